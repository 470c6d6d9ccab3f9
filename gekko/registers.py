import dataclasses
import numpy as np
import numpy.typing as npt


@dataclasses.dataclass(frozen=True)
class Register:
    name: str
    index: int | None = None
    bank: str = 'special'

    def __str__(self) -> str:
        return self.name

    def instantiate(self) -> 'RuntimeRegister':
        return RuntimeRegister(self)


class RuntimeRegister:
    def __init__(self, register: Register):
        self.register = register
        self._value = 0.0 if register.bank in ('fpr', 'ps1') else 0

    @property
    def value(self) -> int | float:
        return self._value

    @value.setter
    def value(self, new_value: int | float):
        self._value = new_value


gpr_by_index = [Register(name=f'r{i}', index=i, bank='gpr') for i in range(32)]
fpr_by_index = [Register(name=f'f{i}', index=i, bank='fpr') for i in range(32)]
ps1_by_index = [Register(name=f'ps1[{i}]', index=i, bank='ps1') for i in range(32)]
gpr_by_name = {register.name: register for register in gpr_by_index}
fpr_by_name = {register.name: register for register in fpr_by_index}

rtoc = gpr_by_index[2]
sda = gpr_by_index[13]
SMALL_DATA_BASES = (rtoc.index, sda.index)

XER_SO = 0x80000000
XER_OV = 0x40000000
XER_CA = 0x20000000

# SPRs the emitted code keeps in scalars of their own; the rest live in spr[].
SCALAR_SPRS = {
    1: 'xer', 8: 'lr', 9: 'ctr', 26: 'srr0', 27: 'srr1',
    **{912 + i: f'gqr{i}' for i in range(8)}
}
TIME_BASE_SPRS = {268: 0, 269: 1, 284: 0, 285: 1}
TBL = 268
TBU = 269
SPR_COUNT = 1024

SPECIAL_NAMES = ('cr', 'xer', 'ctr', 'lr', 'msr', 'fpscr', 'reserve', *sorted(set(SCALAR_SPRS.values()) - {
    'xer', 'ctr', 'lr'}))
special_by_name = {name: Register(name=name) for name in SPECIAL_NAMES}

SEGMENT_REGISTER_COUNT = 16
MAIN_MEMORY_SIZE = 0x01800000


@dataclasses.dataclass
class ExecutionContext:
    memory: npt.NDArray[np.uint8] = dataclasses.field(
        default_factory=lambda: np.zeros(MAIN_MEMORY_SIZE, dtype=np.uint8))
    gpr: list[RuntimeRegister] = dataclasses.field(
        default_factory=lambda: [r.instantiate() for r in gpr_by_index])
    fpr: list[RuntimeRegister] = dataclasses.field(
        default_factory=lambda: [r.instantiate() for r in fpr_by_index])
    ps1: list[RuntimeRegister] = dataclasses.field(
        default_factory=lambda: [r.instantiate() for r in ps1_by_index])
    special: dict[str, RuntimeRegister] = dataclasses.field(
        default_factory=lambda: {name: r.instantiate() for name, r in special_by_name.items()})
    sr: list[RuntimeRegister] = dataclasses.field(
        default_factory=lambda: [Register(f'sr[{i}]', i).instantiate() for i in range(SEGMENT_REGISTER_COUNT)])
    tb: list[RuntimeRegister] = dataclasses.field(
        default_factory=lambda: [Register(f'tb[{i}]', i).instantiate() for i in range(2)])
    spr: list[RuntimeRegister] = dataclasses.field(
        default_factory=lambda: [Register(f'spr[{i}]', i).instantiate() for i in range(SPR_COUNT)])

    def arrays(self) -> dict[str, list[RuntimeRegister]]:
        return {'sr': self.sr, 'tb': self.tb, 'spr': self.spr, 'ps1': self.ps1}
