# actlocal

`actlocal` is a library of parts for running workflow jobs on your own
machine. It has an artifact upload and download server, a cache server that
keeps its entries in a directory, and readers for rc files, env files and
secrets. It can also print a plan of jobs as a table or as a drawn graph.

## Installation

```
pip install actlocal
```

## Modules

### Servers

- `actlocal.cache_server.start_handler(directory, outbound_ip, port, logger)`
  starts a cache server in a background thread. It keeps an SQLite index and
  the archive files under `directory`. Port `0` picks a free port. If you give
  no `outbound_ip`, it uses the machine's outbound address. The returned
  `CacheHandler` has `external_url()` and `close()`, and it also works as a
  context manager. It serves `GET /_apis/artifactcache/cache`,
  `POST .../caches`, `PATCH .../caches/<id>`, `POST .../caches/<id>`,
  `GET .../artifacts/<id>` and `POST .../clean`. Cache keys are not case
  sensitive. Entries that are never finished are removed after five minutes,
  entries that go unused after seven days, and every entry after thirty days.
- `actlocal.cache_server.parse_content_range(value)` parses a
  `bytes START-STOP/*` header. It raises `ValueError` if the header is
  malformed.
- `actlocal.artifacts.serve(artifact_path, addr, port)` starts the artifact
  server and returns a function that stops it. If `artifact_path` is empty, it
  starts nothing.
- `actlocal.artifacts.ArtifactRouter(base_dir, fs)` answers requests without
  a socket. Call `handle(method, url, headers, body)` to get back a `Response`,
  which has `status`, `body` and `headers`, and a `json()` method. `LocalFS` is
  the default storage. `safe_resolve(base_dir, rel_path)` keeps every path
  inside the base directory.
- `actlocal.cache_storage.Storage` and `actlocal.cache_model.Request` and
  `Cache` are the storage and records that the cache server uses.

```python
import urllib.request
from actlocal.cache_server import start_handler

with start_handler("/tmp/actcache", "127.0.0.1", 0, None) as handler:
    url = f"{handler.external_url()}/_apis/artifactcache/cache?keys=k&version=v"
    print(urllib.request.urlopen(url).status)  # 204: nothing cached yet
```

### Configuration

These are in `actlocal.config`:

- `config_locations()` returns the `.actrc` files that are read. They are, in
  order: the one in your home directory, the one in your XDG config
  directory (`act/actrc` or `.actrc`, or `""` if there is none), and the one
  in the current directory.
- `read_args_file(path, split)` reads arguments from one of these files.
  `collect_args(argv)` puts the rc file arguments first and then `argv`.
- `parse_envs(env, envs)` and `read_envs(path, envs)` fill a mapping from
  `NAME=value` entries or from dotenv or YAML files.
  `read_yaml_file(path)` reads a YAML mapping and keeps every value as a
  string.
- `new_secrets(secret_list, prompt)` upper-cases the secret names. When an
  entry has no value, it takes the value from the environment or asks for it
  with `prompt`.
- `parse_matrix(matrix)` turns `key:value` filters into a mapping from each
  key to its set of values.
- `socket_location()` and `is_docker_host_uri(path)` find the container
  engine socket.
- `write_default_image_config(path, answer)` writes platform lines for
  `"Large"`, `"Medium"` or `"Micro"`.

`actlocal.options.Input` holds the run options. `resolve(path)` makes a path
absolute against the working directory, and `new_platforms()` applies
`name=image` overrides to the default platform images. `user_home_dir()` and
`cache_home_dir()` give the base directories.

### Output and helpers

- `actlocal.listing.print_list(stages, out)` prints a table of `JobLine`
  entries, one row per job, with its stage. `draw_graph(stages, out)` draws
  each stage as a row of boxes, with arrows between the stages. Both use
  `actlocal.draw.Pen`, `Style` and `Drawing`.
- `actlocal.context.Context` carries values and can be cancelled. Use
  `with_value`, `value`, `with_cancel`, `cancel`, `cancelled`, and `check`,
  which raises `Canceled`. Helpers store a dry-run flag, a job error slot and
  a logger.
- `actlocal.cartesian.cartesian_product(mapping)` returns every combination
  of the value lists.
- `actlocal.line_writer.LineWriter(*handlers)` sends each finished line to
  the handlers.
- `actlocal.fileutil.copy_file` and `copy_dir` copy files and directory trees.
- `actlocal.outbound_ip.get_outbound_ip()` finds the machine's outbound
  address.

## What it does not do

This package installs no command. It does not read workflow files or build
plans from them: `listing` prints stages that you give it. It also does not
run jobs in containers, inspect git checkouts, or fetch version notices.