# dirsyncd

`dirsyncd` copies source directories into target directories. A manager
process reads a list of directory pairs and runs a full copy of each pair
in a bounded pool of worker processes. It then watches the sources for
changes and hands each change to a worker. A separate console talks to the
running manager through two named pipes. From it you can add pairs, ask
about them, stop monitoring them and sync them again.

The manager and console use POSIX named pipes, so they need a POSIX system.

## Installation

```
pip install .
```

## Configuration

The configuration file holds one pair per line: the source first, then the
target, separated by whitespace.

```
/home/user/docs    /backup/docs
/home/user/photos  /backup/photos
```

- Lines that do not hold two words are skipped.
- Each path is cut to 49 characters.
- Lines longer than 127 characters are read in 127-character pieces.

## Running the manager

```
dirsyncd-manager -l manager.log -c pairs.conf -n 4
```

- `-l` is the manager's log file. It is created, or emptied if it exists.
- `-c` is the configuration file.
- `-n` is the most workers that may run at once. Zero, a negative value or
  a value that is not a number means the default of 5.

The manager removes any old `fss_in` and `fss_out` in the current directory
and creates them again as named pipes.

For each configured pair it prints `Added directory: <source> -> <target>`,
then `Monitoring started for <source>`, and starts a full sync. If a source
cannot be watched, because it is missing or is not a directory, the manager
prints `Failed to watch source directory` and exits with status 1.

Each worker is started as `python -m dirsyncd.worker`. When a worker
finishes, the manager writes an entry to the log file:

```
[2024-05-01 12:00:00] [<source>] [<target>] [<pid>] [FULL]
[SUCCESS] [3 files copied, 0 skipped]
```

- The copy counts appear only for full syncs that did not end in `ERROR`.
- When the status is `ERROR`, the worker's error lines follow, one per
  line, in brackets.

Changes in a watched source directory are queued as tasks:

- a created entry becomes `ADDED`
- a modified file becomes `MODIFIED`
- a deleted entry becomes `DELETED`
- removing the source directory itself becomes `DELETED` with the filename
  `__DIR__`

Only direct entries of the source directory are watched, not its
subdirectories.

## Using the console

Start the console in the same directory as the running manager:

```
dirsyncd-console -l console.log
```

The console sends each accepted command to the manager and writes it to
the console log with a timestamp. It prints the manager's replies and also
appends them to the log. Malformed or unknown commands are reported on
standard error and are never sent.

| Command                 | Manager's response                                                                     |
|-------------------------|----------------------------------------------------------------------------------------|
| `add <source> <target>` | starts watching the source and queues a full sync; replies `Already in queue` if the source is known |
| `status <source>`       | shows the directory, target, last sync time, error count and `ACTIVE` / `NOT ACTIVE`   |
| `cancel <source>`       | stops watching the source; the pair becomes `NOT ACTIVE`                               |
| `sync <source>`         | queues a full sync for a pair that is `NOT ACTIVE`; replies `Sync already in progress` if it is active |
| `shutdown`              | stops all watches, runs the queued tasks, waits for the workers, then exits            |

When a sync started by `sync` finishes, the manager announces
`Sync completed <source> -> <target>` and marks the pair `ACTIVE` again.
Watching is not restarted.

The console exits when its input ends or when the manager closes `fss_out`.
It then removes `fss_out`.

## Running a worker by hand

The manager starts workers itself, but you can also run one task directly:

```
dirsyncd-worker <source_dir> <target_dir> <filename> <operation>
```

| Operation | Filename     | Effect                                                                                     |
|-----------|--------------|--------------------------------------------------------------------------------------------|
| `FULL`    | `ALL`        | creates the target and its parent directories, then copies every regular file at the top level of the source |
| `ADDED`   | a file name  | creates an empty file of that name in the target                                            |
| `MODIFIED`| a file name  | copies that file from the source into the target                                            |
| `DELETED` | any filename | removes the target directory itself, which succeeds only if it is empty                     |

The worker prints a report between `EXEC_REPORT_START` and
`EXEC_REPORT_END`. The report holds:

- `STATUS:` with one of `SUCCESS`, `PARTIAL` or `ERROR`
- `DETAILS:` with the files copied and skipped
- `ERRORS:`, followed by one `- FILE` or `- DIR` line per failure, or
  `None`

Any other combination of operation and filename prints nothing and exits
with status 0.

## Library use

The parts can also be imported:

- `dirsyncd.console.parse_command` turns a console line into a `Command`,
  or raises `CommandError`.
- `dirsyncd.worker.run` carries out one task in-process and returns its
  `ExecReport`, or `None`.
- `dirsyncd.commands.CommandHandler` applies console commands to a
  `WatchRegistry` and `TaskQueue` (from `dirsyncd.state`).
- `dirsyncd.report.parse_report` reads a worker's report text.

## What it does not do

- A file deleted from a source is not deleted from the target. `DELETED`
  tasks only try to remove the target directory, and that fails while the
  directory still holds files.
- An `ADDED` task creates an empty file rather than copying its contents.
  The contents arrive only if a `MODIFIED` event follows.
- Subdirectories are neither copied nor watched.
- `cancel` followed by `sync` runs one more full copy but does not resume
  watching the source.

## Tests

```
pip install .[test]
pytest
```