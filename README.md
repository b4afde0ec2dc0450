# osrkit

Read, write and inspect osu! replay files (`.osr`).

Reading a replay uses the package's own LZMA decoder for the compressed
cursor data. Writing a replay compresses that data with the standard
library's `lzma` module. There are no third-party dependencies.

## Installation

```
pip install osrkit
```

## Command line

```
osrkit <FILE> OPTION [OPTION]...
```

The file comes first, followed by at least one option:

| Option           | Shows                                   |
|------------------|-----------------------------------------|
| `--csv`          | replay frames as CSV on standard output |
| `--mods`         | mod bitfield, in hex                    |
| `--username`     | player name                             |
| `--hash`         | replay MD5 hash                         |
| `--beatmap-hash` | beatmap hash                            |
| `--count-300`    | number of 300s                          |
| `--count-100`    | number of 100s                          |
| `--count-50`     | number of 50s                           |
| `--count-miss`   | number of misses                        |
| `--score`        | total score                             |
| `--max-combo`    | highest combo                           |

Example:

```
osrkit replay.osr --username --score --max-combo
```

The CSV is printed first. The other fields follow in the order of the table,
whatever order the options were given in. The command exits with status 1 in
these cases:

- fewer than two arguments are given;
- the file cannot be opened;
- an option is not recognised;
- the replay cannot be parsed.

A message is written to standard error in each of these cases. The same
function can be called from Python as `osrkit.cli.main(argv)`, and it
returns the exit status.

## Library

```python
from osrkit.osr import parse_osr, replay_frame_csv

with open("replay.osr", "rb") as fh:
    replay = parse_osr(fh)

print(replay.username, replay.total_score, len(replay.frames))

with open("frames.csv", "w") as out:
    replay_frame_csv(out, replay, True)
```

`parse_osr` returns an `OsuReplay` dataclass. Its main fields are:

- mode, version, hashes and username;
- hit counts, score, max combo and the perfect flag;
- the mod bitfield;
- `hp_graph`, a list of `HPGraphPoint`;
- the timestamp;
- `frames`, a list of `ReplayFrame`, each with an absolute time;
- the online score id.

A replay with no compressed data comes back with no frames and no online id.

A file whose header cannot be read raises `UnknownFileError`. Bad data after
the header raises `DamagedFileError`. Both are subclasses of `OsrError`.

Other helpers in `osrkit.osr`:

- `parse_replay_frames` and `format_replay_frames` convert between the
  decompressed `delta|x|y|buttons,` frame text and `ReplayFrame` objects.
- `parse_hp_graph` and `format_hp_graph` do the same for the life bar graph
  (`time|value,` pairs) and `HPGraphPoint` objects.
- `write_osr(stream, replay)` writes an `OsuReplay` to a binary stream. It
  raises `ValueError` in two cases:
  - a hash is not 32 bytes;
  - the version is older than 20121008.
- `GameMode` enumerates the rulesets: osu!, taiko, catch and mania.

## Raw LZMA decoding

`osrkit.lzmadec` decodes raw LZMA streams. It does not read the 13-byte
`.lzma` header, so the properties are passed separately. They can be given
either as an `osrkit.lzmaprops.LzmaProps` or as its 5-byte encoding.

```python
from osrkit.lzmadec import LzmaDecoder, lzma_uncompress

data = lzma_uncompress(body, props_bytes, expected_size)

decoder = LzmaDecoder(props_bytes)
result = decoder.decode(chunk)  # DecodeResult(data, consumed, status)
```

- `lzma_decode` returns a `DecodeResult` and accepts a `FinishMode`.
- `LzmaDecoder.decode` takes an optional output limit.
- `LzmaDecoder.reset` starts a new stream.

Decoding errors raise `LzmaError` or one of its subclasses:

- `DataError`
- `UnsupportedError`
- `InputEOFError`

These are defined in `osrkit.lzmaprops`, together with `FinishMode`,
`Status` and `LzmaProps`.

## Limits

The package has no LZMA encoder of its own. `write_osr` relies on the
standard library's `lzma` module for compression, and the package offers no
standalone compression function.