# kernsim

`kernsim` is the kernel of a small simulated operating system. It keeps every
process in one of the classic scheduling states and moves it between them,
talking over HTTP to separate CPU, memory and IO services:

```
NEW -> READY -> EXEC -> BLOCKED -> SUSP.BLOCKED -> SUSP.READY -> READY ... -> EXIT
```

It contains:

- a **long-term scheduler** that admits processes from NEW (FIFO, or PMCP,
  which places a process before the first queued one that is larger) once
  memory reports that there is room for them, giving SUSP.READY processes
  priority;
- a **short-term scheduler** that hands READY processes to the connected CPUs
  with FIFO, SJF (no preemption) or SRT (SJF with preemption), using the
  burst estimate `Est(n+1) = alpha * R(n) + (1 - alpha) * Est(n)`;
- a **medium-term scheduler** that suspends processes that have stayed
  blocked for longer than the configured time, asks memory to swap them out,
  and moves them on when their IO finishes;
- a registry of **IO devices** (`kernsim.devices.DeviceRegistry`), with a FIFO
  wait queue per device name.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Running the kernel

```
kernsim <file_name> <process_size> <config_id>
```

- `file_name` – pseudocode file of the first process, as memory knows it;
- `process_size` – size of that process in bytes;
- `config_id` – name of the configuration; the kernel reads
  `./configs/<config_id>.json`.

With fewer than three arguments it prints a usage line and exits with
status 1.

The kernel creates the first process in NEW, starts its schedulers and
listens on `port_kernel` on all interfaces. The long-term scheduler waits
until Enter is pressed on the console before it starts admitting processes.

### Configuration

```json
{
  "ip_memory": "127.0.0.1",
  "port_memory": 8002,
  "ip_kernel": "127.0.0.1",
  "port_kernel": 8001,
  "ip_io": "127.0.0.1",
  "port_io": 8003,
  "ip_cpu": "127.0.0.1",
  "port_cpu": 8004,
  "scheduler_algorithm": "SRT",
  "ready_ingress_algorithm": "PMCP",
  "alpha": 0.5,
  "initial_estimate": 10000,
  "suspension_time": 4500,
  "log_level": "info"
}
```

- `scheduler_algorithm`: `FIFO`, `SJF` or `SRT`; anything else logs a warning
  and no short-term scheduler runs.
- `ready_ingress_algorithm`: `FIFO` or `PMCP`.
- `suspension_time`: milliseconds a process may stay BLOCKED before it is
  suspended.
- `log_level`: `debug`, `info`, `warn` or `error` (anything else means
  `info`).

Missing keys keep their defaults (empty text or zero); unknown keys are
ignored; a value of the wrong type raises `ValueError`.

Logs are written as JSON lines, both to standard output and to a file named
`tp-<timestamp>.log` in the working directory.

## HTTP interface

The kernel answers on these paths (any method is accepted; the services send
POST with a JSON body). Replies are plain text: `ok` on success, or an error
message with status 400 (500 when a process cannot be blocked for IO).

| Path                      | Sent by | Purpose                                       |
|---------------------------|---------|-----------------------------------------------|
| `/io/conexion-inicial`    | IO      | register a device (`nombre`, `ip`, `puerto`)  |
| `/io/desconexion`         | IO      | unregister a device                           |
| `/io/peticion-finalizada` | IO      | a device finished a request for a process     |
| `/cpu/conexion-inicial`   | CPU     | register a CPU (`ip`, `puerto`, `id`)         |
| `/cpu/proceso`            | CPU     | a syscall from the running process            |

Syscalls accepted on `/cpu/proceso` (`pid`, `pc`, `instruccion`, `args`):

- `INIT_PROC <file> <size>` – create a new process in NEW;
- `IO <device> <milliseconds>` – block the process on a device (or queue it
  if every device of that name is busy), or send it to EXIT if no device of
  that name is connected;
- `DUMP_MEMORY` – block the process while memory writes a dump, then return
  it to READY (or EXIT on failure);
- `EXIT` – finish the process.

When a process finishes, the kernel logs how many times it entered each state
and how many milliseconds it spent there.

## Using it from Python

```python
from kernsim.config import load_config
from kernsim.logsetup import build_logger
from kernsim.server import Kernel, create_app

config = load_config("configs/kernel.json")
kernel = Kernel(config, build_logger(config.log_level))
app = create_app(kernel)
kernel.start_schedulers("proceso1", "256")
app.run(port=config.port_kernel)
```

`Kernel.memory_handshake(file_name, size)` posts the size to memory's
`/kernel/acceso` endpoint and returns the HTTP status; the `kernsim` command
does not call it.

`kernsim.memory_client.MemoryClient` and `kernsim.cpu_client.Cpu` can also be
used on their own to talk to the memory and CPU services.

## What it does not do

This package is the kernel only. It contains no memory service, no CPU and no
IO device: it expects them to run elsewhere and reach it over HTTP, and it
calls their endpoints (`/kernel/espacio-disponible`, `/kernel/procesos`,
`/kernel/usleep` and so on) at the addresses in its configuration. Without
them, processes are created but never admitted or run.