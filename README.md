# nemukit

Tools for checking an instruction-set emulator against a reference model and
for working with Kconfig-style configuration.

## What is inside

- `nemukit.gdbproto`: a small client for the GDB remote serial protocol.
  `encode_packet` frames a command with its checksum. `GdbConnection`
  sends and receives packets over a pair of binary streams or a TCP
  connection (`GdbConnection.connect(host, port)`). It handles
  acknowledgements and resends, `}` escapes, `*` run-length encoding and
  no-ack mode (`start_noack`). `hex_encode`, `gdb_decode_hex` and
  `gdb_decode_hex_str` are the hex helpers it uses. Errors are raised as
  `GdbProtocolError`, and `ConnectionClosed` when the peer goes away.
- `nemukit.qemu`: drives QEMU as a reference model for differential testing.
  `QemuRef` starts `qemu-system-*` halted with a GDB stub. It connects to the
  stub, copies memory to the guest, exchanges register state in either
  `Direction` and single-steps the guest. For `Isa.X86`, `init_isa` loads a
  boot sector that switches the guest into protected mode. `GdbHost` wraps
  the `M`, `g`, `G` and `vCont;s` commands. `qemu_command` builds the QEMU
  command line, and `difftest_reg_size` gives the size of the register
  state exchanged for each `Isa`. `encode_regs` and `decode_regs` convert
  between 32-bit words and the hex register payload.
- `nemukit.kpreprocess`: the Kconfig macro language. `Preprocessor` expands
  `$(var)` references, user-defined functions with `$(1)`, `$(2)` and so on,
  and environment variables. Its built-ins are `error-if`, `warning-if`,
  `info`, `filename`, `lineno` and `shell`. Variables take the simple,
  recursive or append flavour (`VariableFlavor`). `env_write_dep` writes
  make rules for every environment variable that was read. Fatal errors
  raise `PreprocessError`.
- `nemukit.ksymbol`: symbol types and flags (`SymbolType`, `Tristate`,
  `PropType`, `SymbolFlag`), the `Symbol` record and a `SymbolTable` with
  `lookup`, `find` and case-insensitive regular-expression `re_search`.
  The search lists exact matches first. Also `string_valid`,
  `escape_string_value`, `strhash`, `sym_type_name` and `prop_type_name`.
- `nemukit.ksymstate`: tristate rules. These are `effective_type`,
  `tristate_within_range`, `is_changeable`, `toggle_order`,
  `tristate_from_string` and `tristate_to_string`.

## Installing

```
pip install nemukit
```

For the tests:

```
pip install "nemukit[test]"
pytest
```

## Examples

Talking the GDB remote protocol over in-memory streams:

```python
import io
from nemukit.gdbproto import GdbConnection

reader = io.BytesIO(b"+$OK#9a")
writer = io.BytesIO()
conn = GdbConnection(reader, writer)
conn.send(b"g")
assert conn.recv() == b"OK"
assert writer.getvalue() == b"+$g#67+"
```

Expanding Kconfig macros:

```python
from nemukit.kpreprocess import Preprocessor, VariableFlavor

pp = Preprocessor("Kconfig", 1, {})
pp.variable_add("greet", "hello $(1)", VariableFlavor.RECURSIVE)
assert pp.expand_string("$(greet,world)") == "hello world"
```

Symbols and tristates:

```python
from nemukit.ksymbol import SymbolTable, SymbolType, string_valid
from nemukit.ksymstate import toggle_order, Tristate

table = SymbolTable()
foo = table.lookup("FOO")
assert table.re_search("foo") == [foo]
assert not string_valid(SymbolType.INT, "012")
assert toggle_order(Tristate.NO) == (Tristate.MOD, Tristate.YES, Tristate.NO)
```

Running QEMU as a reference. This needs the matching `qemu-system-*` binary
on `PATH`:

```python
from nemukit.qemu import Isa, QemuRef, Direction

program_bytes = bytes.fromhex("93000000")   # a single RISC-V instruction
ref = QemuRef(Isa.RISCV32, 1234)
ref.start()
ref.memcpy(0x80000000, program_bytes, Direction.TO_REF)
ref.exec(1)
regs = ref.regcpy(None, Direction.TO_DUT)
ref.close()
```

## What it does not do

- There is no emulator core. The package has no instruction decoder, CPU or
  guest memory model of its own. It only drives QEMU as a reference.
- `QemuRef.raise_intr` always raises. Interrupts cannot be injected through
  the QEMU stub.
- There is no Kconfig file parser, menu tree, dependency expressions or
  value calculation. There is no interactive configuration screen. The
  Kconfig modules cover macro expansion, the symbol table and the tristate
  rules only.
- There is no command-line program. Everything is used as a library.