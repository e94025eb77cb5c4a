# ccql

Query your Claude Code data directory with SQL.

ccql reads the files Claude Code keeps under `~/.claude`, loads them into an
in-memory SQLite database and runs your statement against it. It needs
nothing beyond the Python standard library.

| Table         | Source                  | Columns                                                                 |
|---------------|-------------------------|-------------------------------------------------------------------------|
| `history`     | `history.jsonl`         | the keys of each line: `display`, `timestamp`, `project`, `pastedContents`, ... |
| `transcripts` | `transcripts/*.jsonl`   | `_source_file`, `_session_id`, then the keys of each line (`type`, `content`, `tool_name`, ...) |
| `todos`       | `todos/*.json`          | `_source_file`, `_workspace_id`, `_agent_id`, then `content`, `status`, `activeForm`, ... |
| `stats`       | `stats-cache.json`      | the top-level keys of the statistics object                             |

Any other `*.json` or `*.jsonl` file directly inside the data directory is
also a table, named after the file. Columns come from the keys found in the
rows; arrays and objects are stored as compact JSON text. For `transcripts`,
a file named `ses_<id>.jsonl` gives the session id `<id>`. For `todos`, a file
named `<workspace>-agent-<agent>.json` gives the two ids; otherwise the agent
id is `unknown`.

## Installation

```
pip install .
```

## Usage

```
ccql "SELECT display FROM history LIMIT 5"
ccql "SELECT * FROM todos WHERE status='pending'"
ccql "SELECT tool_name, COUNT(*) FROM transcripts WHERE type='tool_use' GROUP BY tool_name"
```

A query given without a command runs as `ccql sql "..."` (alias `ccql q`).

Global options:

- `-f`, `--format` — `table` (default), `json`, `jsonl` or `raw`
- `--data-dir PATH` — the data directory; otherwise `CLAUDE_DATA_DIR`, otherwise `~/.claude`.
  The directory must exist.
- `-v`, `--verbose` — debug logging
- `--version`

### Commands

```
ccql tables                        # table schemas and whether their data exists
ccql examples                      # more example queries
ccql prompts --project myapp -l 20 # user prompts, newest first
ccql sessions --sort-by size       # transcript sessions (time or size)
ccql stats --group-by date         # usage statistics, plus the last 10 days
ccql search "error" --scope prompts
ccql todos --status pending
ccql duplicates --threshold 0.85   # clusters of repeated or similar prompts
ccql query '.[] | select(.display | test("fix"))' history
```

- `prompts` filters by `--session`, `--project` (substring matches),
  `--since` and `--until` (`YYYY-MM-DD`, UTC), and `--limit`. Prompts that
  are empty or start with `/` are left out.
- `search` matches a literal term, case-insensitively unless `-c` is given;
  `-r` treats the term as a regular expression. `--scope` is `all`,
  `prompts` or `transcripts`.
- `todos` filters files by `--agent`; `--status` narrows the table view.
- `duplicates` takes `--threshold`, `--min-count`, `--limit`,
  `--show-variants`, `--sort count|latest` and `--min-length`. Similarity is
  normalized Levenshtein over lower-cased prompts; code-like text is ignored.
- `query` runs a small jq-like expression over the raw records of `history`,
  `transcripts` (optionally narrowed by `--file-pattern`), `stats` or
  `todos`. It understands `.`, `.field`, `.[n]`, `.[]`, pipes, and
  `select(.f == "v")`, `select(.f != "v")` and `select(.f | test("s"))`,
  where `test` is a plain substring check.

### Writing

Statements that start with `INSERT`, `UPDATE`, `DELETE`, `DROP`, `CREATE`,
`ALTER` or `TRUNCATE` are refused unless `--write` is given. `--dry-run`
prints the statement without running it. `DELETE` and `UPDATE` without a
`WHERE` clause, and `TRUNCATE`, are rejected. Before an `INSERT`, `UPDATE` or
`DELETE`, the table's file is copied to a `.bak` file beside it. After the
statement runs, the changed table is written back to its file; a dropped
table's file is removed.

```
ccql --dry-run "DELETE FROM history WHERE timestamp < 1700000000000"
ccql --write "DELETE FROM history WHERE timestamp < 1700000000000"
```

The `transcripts` and `todos` tables are read-only.

## Library use

```python
from ccql.config import Config
from ccql.sqlengine import SqlEngine, SqlOptions

with SqlEngine(Config(Config.default_data_dir()), SqlOptions()) as engine:
    rows = engine.execute("SELECT display FROM history LIMIT 3")
```

Other entry points: `ccql.datasources` (typed loaders for each file),
`ccql.query.QueryEngine`, `ccql.search.SearchEngine`,
`ccql.dedup.FuzzyDeduper` and `ccql.commands` (each command, writing to a
given stream). Errors derive from `ccql.errors.CcqlError`.

## Limits

- The SQL dialect is SQLite's; every table is reloaded from the files on each run.
- `search -A/-B`, `sessions --detailed/--project` and `stats --since/--until`
  are accepted but do not change the output.
- There is no way to write to transcript or todo files.