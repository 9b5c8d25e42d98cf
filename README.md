# langos

`langos` is a small distributed document store. It has three programs:

* a **name server**, which keeps track of every file, who owns it, who may
  read or write it, and which storage server holds it;
* one or more **storage servers**, which keep the file contents on disk and
  handle reads, streamed reads, sentence-level writes and undo;
* an interactive **client**, which talks to the name server and is sent on to
  the right storage server for file contents.

Files are treated as text made of sentences, where a sentence ends with `.`,
`!` or `?`. Edits are made one sentence at a time: while one user edits a
sentence it is locked for everyone else, while other sentences of the same
file stay open for editing.

## Installing

```
pip install .
```

The package needs nothing beyond the Python standard library (3.10 or later).
To run the tests:

```
pip install ".[test]"
pytest
```

## Running

Start the name server first. It listens on port 8000 and keeps its state
(files and known users) under `data/name_server/` in the working directory:

```
langos-name-server
```

Start one or more storage servers. The arguments are the directory to store
files in, the name server's address, the name server's port number, and the
number on which this storage server accepts clients:

```
langos-storage-server ./store1 127.0.0.1 8000 9001
langos-storage-server ./store2 127.0.0.1 8000 9002
```

On connecting, a storage server reports the files already in its directory,
so files known to the name server come back online after a restart.

Then start a client, giving the name server's address. It asks for a user
name and opens a prompt:

```
langos-client 127.0.0.1
```

## Client commands

| Command | What it does |
|---|---|
| `VIEW` | List files you can read |
| `VIEW -a` | List all files |
| `VIEW -l` / `VIEW -al` | As above, with owner, size, word and character counts and modification time |
| `CREATE <file>` | Create an empty file on the next storage server in turn |
| `DELETE <file>` | Delete a file (owner only) |
| `READ <file>` | Print the file's contents |
| `STREAM <file>` | Print the file word by word |
| `WRITE <file> <sentence>` | Open an editing session on one sentence |
| `UNDO <file>` | Restore the file as it was before its last write |
| `INFO <file>` | Show owner, timestamps, sizes and the access list |
| `ADDACCESS -R <file> <user>` | Give a user read access (owner only) |
| `ADDACCESS -W <file> <user>` | Give a user read and write access (owner only) |
| `REMACCESS <file> <user>` | Take a user's access away (owner only) |
| `LIST` | List every user the name server has seen |
| `EXEC <file>` | Run the file as a script on the name server host and print its output |
| `exit` / `quit` | Leave the client |

### Writing

`WRITE <file> <n>` locks sentence `n` (counting from 0). You may edit an
existing sentence, or start a new one at the end if the last sentence is
finished with a delimiter. Inside the session, each line has the form

```
<word_index> <words...>
```

which inserts the words before word `<word_index>` of the sentence (a
delimiter counts as a word of its own). Type `ETIRW` to commit all the
updates at once. If other users' commits add or remove sentences earlier
in the file while you are editing, your edits land on the sentence you
started with.

Example session:

```
LangOS (alice) > CREATE notes.txt
201 OK: File created successfully!
LangOS (alice) > WRITE notes.txt 0
Entering WRITE mode for sentence 0. Type '<word_idx> <content>' or 'ETIRW' to finish.
WRITE > 0 Hello world.
WRITE > ETIRW
200 OK: Write Successful!
LangOS (alice) > READ notes.txt
Hello world.
```

Only the most recent write can be undone: each commit replaces the single
undo backup kept next to the file.

### A note on EXEC

`EXEC` fetches the file from its storage server, writes it to a temporary
script, runs it through the shell on the machine hosting the name server
and sends its output (standard error included) back. Only the first chunk
the storage server sends (up to 4095 bytes) is run. Only run the name server
where that is acceptable, and grant access to files with care.

## Status codes

Replies start with a numeric code: `200`/`201`/`202` for success, `400`
for bad usage, `401` for denied access, `404` for a missing file, `409` when
a file already exists, `423` when a sentence is being edited by someone
else, `500` for server failures and `503` when no storage server is
available for the file.

## Limits

* All three programs log to standard output only; nothing is written to log
  files.
* Files are not replicated. When a storage server disconnects, its files are
  offline until it connects again.
* Files a storage server reports that the name server does not know of are
  ignored, not adopted.
* There is no authentication: a user is whoever the client says it is.