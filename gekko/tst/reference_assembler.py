"""Text-to-word assembler for the generic instruction forms.

Encodings come from the table below, written out from the architecture
manuals with plain bit shifts, so that the decoder tables can be checked
against something that does not share their field definitions.
"""
import dataclasses
import itertools
import os
from typing import Any
from lark import Lark, Transformer
from lark.exceptions import LarkError


class AssemblerError(Exception):
    pass


grammar_path = os.path.join(os.path.dirname(__file__), 'reference_assembler.lark')
with open(grammar_path, 'r') as f:
    asm_grammar = f.read()

asm_parser = Lark(asm_grammar, parser='earley', maybe_placeholders=False)


@dataclasses.dataclass(frozen=True)
class Operand:
    kind: str
    value: int
    base: int = 0


class OperandTransformer(Transformer):
    def start(self, items: list[Any]) -> tuple[str, list[Operand]]:
        operands = items[1] if len(items) > 1 else []
        return str(items[0]), operands

    def operands(self, items: list[Operand]) -> list[Operand]:
        return list(items)

    def register(self, items: list[Any]) -> Operand:
        token = str(items[0])
        return Operand('fpr' if token[0] == 'f' else 'gpr', int(token[1:]))

    def cr_field(self, items: list[Any]) -> Operand:
        return Operand('crf', int(str(items[0])[2:]))

    def number(self, items: list[Any]) -> Operand:
        return Operand('number', int(str(items[0]), 0))

    def memory(self, items: list[Operand]) -> Operand:
        displacement, base = items
        if base.kind == 'number' and base.value != 0 or base.kind == 'fpr':
            raise AssemblerError(f'Bad base register in memory operand: {base}')
        return Operand('memory', displacement.value, base.value)


@dataclasses.dataclass(frozen=True)
class Slot:
    """Where one text operand lands: ``shift`` is counted from the least significant bit."""
    kind: str
    shift: int = 0
    width: int = 5

    def place(self, operand: Operand, address: int, absolute: bool) -> int:
        mask = (1 << self.width) - 1
        if self.kind == 'base':
            if operand.kind == 'number' and operand.value == 0:
                return 0
            self._expect(operand, 'gpr')
        elif self.kind in ('gpr', 'fpr', 'crf', 'number', 'memory'):
            self._expect(operand, self.kind)
        else:
            self._expect(operand, 'number')
        if self.kind == 'memory':
            return (operand.base << 16) | (operand.value & mask)
        if self.kind == 'spr':
            return (((operand.value & 0x1f) << 5) | (operand.value >> 5)) << self.shift
        if self.kind == 'target':
            offset = operand.value if absolute else operand.value - address
            return offset & mask & ~3
        return (operand.value & mask) << self.shift

    def _expect(self, operand: Operand, kind: str):
        if operand.kind != kind:
            raise AssemblerError(f'Expected a {kind} operand, got {operand.kind} {operand.value}')


RD = Slot('gpr', 21)
RA = Slot('gpr', 16)
RB = Slot('gpr', 11)
RA0 = Slot('base', 16)
FD = Slot('fpr', 21)
FA = Slot('fpr', 16)
FB = Slot('fpr', 11)
FC = Slot('fpr', 6)
CRFD = Slot('crf', 23, 3)
CRFS = Slot('crf', 18, 3)
IMM16 = Slot('number', 0, 16)
L = Slot('number', 21, 1)
SH = Slot('number', 11)
MB = Slot('number', 6)
ME = Slot('number', 1)
BIT_D = Slot('number', 21)
BIT_A = Slot('number', 16)
BIT_B = Slot('number', 11)
CRM = Slot('number', 12, 8)
FM = Slot('number', 17, 8)
SR = Slot('number', 16, 4)
FPSCR_IMM = Slot('number', 12, 4)
PS_W = Slot('number', 15, 1)
PS_I = Slot('number', 12, 3)
PSX_W = Slot('number', 10, 1)
PSX_I = Slot('number', 7, 3)
SPR = Slot('spr', 11, 10)
DISPLACEMENT = Slot('memory', 0, 16)
PS_DISPLACEMENT = Slot('memory', 0, 12)
LI = Slot('target', 0, 26)
BD = Slot('target', 0, 16)

FLOAT_SLOTS = {'d': FD, 'a': FA, 'b': FB, 'c': FC}


@dataclasses.dataclass(frozen=True)
class Encoding:
    primary: int
    slots: tuple[Slot, ...] = ()
    xo: int | None = None
    suffixes: str = ''
    fixed: int = 0

    def base_word(self) -> int:
        word = (self.primary << 26) | self.fixed
        if self.xo is not None:
            word |= self.xo << 1
        return word


def _float(primary: int, xo: int, operands: str, suffixes: str = '.') -> Encoding:
    return Encoding(primary, tuple(FLOAT_SLOTS[operand] for operand in operands), xo, suffixes)


def _x(xo: int, slots: tuple[Slot, ...], suffixes: str = '', primary: int = 31) -> Encoding:
    return Encoding(primary, slots, xo, suffixes)


ENCODINGS = {
    'twi': Encoding(3, (BIT_D, RA, IMM16)),
    'mulli': Encoding(7, (RD, RA, IMM16)),
    'subfic': Encoding(8, (RD, RA, IMM16)),
    'cmpli': Encoding(10, (CRFD, L, RA, IMM16)),
    'cmpi': Encoding(11, (CRFD, L, RA, IMM16)),
    'addic': Encoding(12, (RD, RA, IMM16)),
    'addic.': Encoding(13, (RD, RA, IMM16)),
    'addi': Encoding(14, (RD, RA, IMM16)),
    'addis': Encoding(15, (RD, RA, IMM16)),
    'bc': Encoding(16, (BIT_D, BIT_A, BD), suffixes='la'),
    'sc': Encoding(17, fixed=0x2),
    'b': Encoding(18, (LI,), suffixes='la'),
    'rlwimi': Encoding(20, (RA, RD, SH, MB, ME), suffixes='.'),
    'rlwinm': Encoding(21, (RA, RD, SH, MB, ME), suffixes='.'),
    'rlwnm': Encoding(23, (RA, RD, RB, MB, ME), suffixes='.'),
    'ori': Encoding(24, (RA, RD, IMM16)),
    'oris': Encoding(25, (RA, RD, IMM16)),
    'xori': Encoding(26, (RA, RD, IMM16)),
    'xoris': Encoding(27, (RA, RD, IMM16)),
    'andi.': Encoding(28, (RA, RD, IMM16)),
    'andis.': Encoding(29, (RA, RD, IMM16)),

    'mcrf': _x(0, (CRFD, CRFS), primary=19),
    'bclr': _x(16, (BIT_D, BIT_A), 'l', primary=19),
    'crnor': _x(33, (BIT_D, BIT_A, BIT_B), primary=19),
    'rfi': _x(50, (), primary=19),
    'crandc': _x(129, (BIT_D, BIT_A, BIT_B), primary=19),
    'isync': _x(150, (), primary=19),
    'crxor': _x(193, (BIT_D, BIT_A, BIT_B), primary=19),
    'crnand': _x(225, (BIT_D, BIT_A, BIT_B), primary=19),
    'crand': _x(257, (BIT_D, BIT_A, BIT_B), primary=19),
    'creqv': _x(289, (BIT_D, BIT_A, BIT_B), primary=19),
    'crorc': _x(417, (BIT_D, BIT_A, BIT_B), primary=19),
    'cror': _x(449, (BIT_D, BIT_A, BIT_B), primary=19),
    'bcctr': _x(528, (BIT_D, BIT_A), 'l', primary=19),

    'cmp': _x(0, (CRFD, L, RA, RB)),
    'tw': _x(4, (BIT_D, RA, RB)),
    'subfc': _x(8, (RD, RA, RB), 'o.'),
    'addc': _x(10, (RD, RA, RB), 'o.'),
    'mulhwu': _x(11, (RD, RA, RB), '.'),
    'mfcr': _x(19, (RD,)),
    'lwarx': _x(20, (RD, RA0, RB)),
    'lwzx': _x(23, (RD, RA0, RB)),
    'slw': _x(24, (RA, RD, RB), '.'),
    'cntlzw': _x(26, (RA, RD), '.'),
    'and': _x(28, (RA, RD, RB), '.'),
    'cmpl': _x(32, (CRFD, L, RA, RB)),
    'subf': _x(40, (RD, RA, RB), 'o.'),
    'dcbst': _x(54, (RA0, RB)),
    'lwzux': _x(55, (RD, RA0, RB)),
    'andc': _x(60, (RA, RD, RB), '.'),
    'mulhw': _x(75, (RD, RA, RB), '.'),
    'mfmsr': _x(83, (RD,)),
    'dcbf': _x(86, (RA0, RB)),
    'lbzx': _x(87, (RD, RA0, RB)),
    'neg': _x(104, (RD, RA), 'o.'),
    'lbzux': _x(119, (RD, RA0, RB)),
    'nor': _x(124, (RA, RD, RB), '.'),
    'subfe': _x(136, (RD, RA, RB), 'o.'),
    'adde': _x(138, (RD, RA, RB), 'o.'),
    'mtcrf': _x(144, (CRM, RD)),
    'mtmsr': _x(146, (RD,)),
    'stwcx.': Encoding(31, (RD, RA0, RB), 150, fixed=0x1),
    'stwx': _x(151, (RD, RA0, RB)),
    'stwux': _x(183, (RD, RA0, RB)),
    'subfze': _x(200, (RD, RA), 'o.'),
    'addze': _x(202, (RD, RA), 'o.'),
    'mtsr': _x(210, (SR, RD)),
    'stbx': _x(215, (RD, RA0, RB)),
    'subfme': _x(232, (RD, RA), 'o.'),
    'addme': _x(234, (RD, RA), 'o.'),
    'mullw': _x(235, (RD, RA, RB), 'o.'),
    'mtsrin': _x(242, (RD, RB)),
    'dcbtst': _x(246, (RA0, RB)),
    'stbux': _x(247, (RD, RA0, RB)),
    'add': _x(266, (RD, RA, RB), 'o.'),
    'dcbt': _x(278, (RA0, RB)),
    'lhzx': _x(279, (RD, RA0, RB)),
    'eqv': _x(284, (RA, RD, RB), '.'),
    'tlbie': _x(306, (RB,)),
    'lhzux': _x(311, (RD, RA0, RB)),
    'xor': _x(316, (RA, RD, RB), '.'),
    'mfspr': _x(339, (RD, SPR)),
    'lhax': _x(343, (RD, RA0, RB)),
    'tlbia': _x(370, ()),
    'mftb': _x(371, (RD, SPR)),
    'lhaux': _x(375, (RD, RA0, RB)),
    'sthx': _x(407, (RD, RA0, RB)),
    'orc': _x(412, (RA, RD, RB), '.'),
    'sthux': _x(439, (RD, RA0, RB)),
    'or': _x(444, (RA, RD, RB), '.'),
    'divwu': _x(459, (RD, RA, RB), 'o.'),
    'mtspr': _x(467, (SPR, RD)),
    'dcbi': _x(470, (RA0, RB)),
    'nand': _x(476, (RA, RD, RB), '.'),
    'divw': _x(491, (RD, RA, RB), 'o.'),
    'mcrxr': _x(512, (CRFD,)),
    'lwbrx': _x(534, (RD, RA0, RB)),
    'lfsx': _x(535, (FD, RA0, RB)),
    'srw': _x(536, (RA, RD, RB), '.'),
    'tlbsync': _x(566, ()),
    'lfsux': _x(567, (FD, RA0, RB)),
    'mfsr': _x(595, (RD, SR)),
    'lswi': _x(597, (RD, RA0, SH)),
    'sync': _x(598, ()),
    'lfdx': _x(599, (FD, RA0, RB)),
    'lfdux': _x(631, (FD, RA0, RB)),
    'mfsrin': _x(659, (RD, RB)),
    'stwbrx': _x(662, (RD, RA0, RB)),
    'stfsx': _x(663, (FD, RA0, RB)),
    'stfsux': _x(695, (FD, RA0, RB)),
    'stswi': _x(725, (RD, RA0, SH)),
    'stfdx': _x(727, (FD, RA0, RB)),
    'stfdux': _x(759, (FD, RA0, RB)),
    'lhbrx': _x(790, (RD, RA0, RB)),
    'sraw': _x(792, (RA, RD, RB), '.'),
    'srawi': _x(824, (RA, RD, SH), '.'),
    'eieio': _x(854, ()),
    'sthbrx': _x(918, (RD, RA0, RB)),
    'extsh': _x(922, (RA, RD), '.'),
    'extsb': _x(954, (RA, RD), '.'),
    'icbi': _x(982, (RA0, RB)),
    'stfiwx': _x(983, (FD, RA0, RB)),
    'dcbz': _x(1014, (RA0, RB)),

    'lwz': Encoding(32, (RD, DISPLACEMENT)),
    'lwzu': Encoding(33, (RD, DISPLACEMENT)),
    'lbz': Encoding(34, (RD, DISPLACEMENT)),
    'lbzu': Encoding(35, (RD, DISPLACEMENT)),
    'stw': Encoding(36, (RD, DISPLACEMENT)),
    'stwu': Encoding(37, (RD, DISPLACEMENT)),
    'stb': Encoding(38, (RD, DISPLACEMENT)),
    'stbu': Encoding(39, (RD, DISPLACEMENT)),
    'lhz': Encoding(40, (RD, DISPLACEMENT)),
    'lhzu': Encoding(41, (RD, DISPLACEMENT)),
    'lha': Encoding(42, (RD, DISPLACEMENT)),
    'lhau': Encoding(43, (RD, DISPLACEMENT)),
    'sth': Encoding(44, (RD, DISPLACEMENT)),
    'sthu': Encoding(45, (RD, DISPLACEMENT)),
    'lmw': Encoding(46, (RD, DISPLACEMENT)),
    'stmw': Encoding(47, (RD, DISPLACEMENT)),
    'lfs': Encoding(48, (FD, DISPLACEMENT)),
    'lfsu': Encoding(49, (FD, DISPLACEMENT)),
    'lfd': Encoding(50, (FD, DISPLACEMENT)),
    'lfdu': Encoding(51, (FD, DISPLACEMENT)),
    'stfs': Encoding(52, (FD, DISPLACEMENT)),
    'stfsu': Encoding(53, (FD, DISPLACEMENT)),
    'stfd': Encoding(54, (FD, DISPLACEMENT)),
    'stfdu': Encoding(55, (FD, DISPLACEMENT)),

    'fdivs': _float(59, 18, 'dab'),
    'fsubs': _float(59, 20, 'dab'),
    'fadds': _float(59, 21, 'dab'),
    'fsqrts': _float(59, 22, 'db'),
    'fres': _float(59, 24, 'db'),
    'fmuls': _float(59, 25, 'dac'),
    'fmsubs': _float(59, 28, 'dacb'),
    'fmadds': _float(59, 29, 'dacb'),
    'fnmsubs': _float(59, 30, 'dacb'),
    'fnmadds': _float(59, 31, 'dacb'),

    'fdiv': _float(63, 18, 'dab'),
    'fsub': _float(63, 20, 'dab'),
    'fadd': _float(63, 21, 'dab'),
    'fsqrt': _float(63, 22, 'db'),
    'fsel': _float(63, 23, 'dacb'),
    'fmul': _float(63, 25, 'dac'),
    'frsqrte': _float(63, 26, 'db'),
    'fmsub': _float(63, 28, 'dacb'),
    'fmadd': _float(63, 29, 'dacb'),
    'fnmsub': _float(63, 30, 'dacb'),
    'fnmadd': _float(63, 31, 'dacb'),
    'fcmpu': _x(0, (CRFD, FA, FB), primary=63),
    'frsp': _float(63, 12, 'db'),
    'fctiw': _float(63, 14, 'db'),
    'fctiwz': _float(63, 15, 'db'),
    'fcmpo': _x(32, (CRFD, FA, FB), primary=63),
    'mtfsb1': _x(38, (BIT_D,), '.', primary=63),
    'fneg': _float(63, 40, 'db'),
    'mcrfs': _x(64, (CRFD, CRFS), primary=63),
    'mtfsb0': _x(70, (BIT_D,), '.', primary=63),
    'fmr': _float(63, 72, 'db'),
    'mtfsfi': _x(134, (CRFD, FPSCR_IMM), '.', primary=63),
    'fnabs': _float(63, 136, 'db'),
    'fabs': _float(63, 264, 'db'),
    'mffs': _float(63, 583, 'd'),
    'mtfsf': _x(711, (FM, FB), '.', primary=63),

    'psq_l': Encoding(56, (FD, PS_DISPLACEMENT, PS_W, PS_I)),
    'psq_lu': Encoding(57, (FD, PS_DISPLACEMENT, PS_W, PS_I)),
    'psq_st': Encoding(60, (FD, PS_DISPLACEMENT, PS_W, PS_I)),
    'psq_stu': Encoding(61, (FD, PS_DISPLACEMENT, PS_W, PS_I)),
    'psq_lx': _x(6, (FD, RA0, RB, PSX_W, PSX_I), primary=4),
    'psq_stx': _x(7, (FD, RA0, RB, PSX_W, PSX_I), primary=4),
    'psq_lux': _x(38, (FD, RA0, RB, PSX_W, PSX_I), primary=4),
    'psq_stux': _x(39, (FD, RA0, RB, PSX_W, PSX_I), primary=4),
    'ps_sum0': _float(4, 10, 'dacb'),
    'ps_sum1': _float(4, 11, 'dacb'),
    'ps_muls0': _float(4, 12, 'dac'),
    'ps_muls1': _float(4, 13, 'dac'),
    'ps_madds0': _float(4, 14, 'dacb'),
    'ps_madds1': _float(4, 15, 'dacb'),
    'ps_div': _float(4, 18, 'dab'),
    'ps_sub': _float(4, 20, 'dab'),
    'ps_add': _float(4, 21, 'dab'),
    'ps_sel': _float(4, 23, 'dacb'),
    'ps_res': _float(4, 24, 'db'),
    'ps_mul': _float(4, 25, 'dac'),
    'ps_rsqrte': _float(4, 26, 'db'),
    'ps_msub': _float(4, 28, 'dacb'),
    'ps_madd': _float(4, 29, 'dacb'),
    'ps_nmsub': _float(4, 30, 'dacb'),
    'ps_nmadd': _float(4, 31, 'dacb'),
    'ps_cmpu0': _x(0, (CRFD, FA, FB), primary=4),
    'ps_cmpo0': _x(32, (CRFD, FA, FB), primary=4),
    'ps_neg': _float(4, 40, 'db'),
    'ps_cmpu1': _x(64, (CRFD, FA, FB), primary=4),
    'ps_mr': _float(4, 72, 'db'),
    'ps_cmpo1': _x(96, (CRFD, FA, FB), primary=4),
    'ps_nabs': _float(4, 136, 'db'),
    'ps_abs': _float(4, 264, 'db'),
    'ps_merge00': _float(4, 528, 'dab'),
    'ps_merge01': _float(4, 560, 'dab'),
    'ps_merge10': _float(4, 592, 'dab'),
    'ps_merge11': _float(4, 624, 'dab'),
    'dcbz_l': _x(1014, (RA0, RB), primary=4),
}

# Suffix letters in the order they follow the base name, with the bit each one sets.
SUFFIX_BITS = (('o', 0x400), ('l', 0x1), ('a', 0x2), ('.', 0x1))


def _spellings(name: str, encoding: Encoding):
    choices = [('', c) if c in encoding.suffixes else ('',) for c, _ in SUFFIX_BITS]
    for chosen in itertools.product(*choices):
        word = 0
        for letter, (_, bit) in zip(chosen, SUFFIX_BITS):
            if letter:
                word |= bit
        yield name + ''.join(chosen), encoding, word, 'a' in chosen


def _build_variants() -> dict[str, tuple[Encoding, int, bool]]:
    variants = {}
    for name, encoding in ENCODINGS.items():
        for spelling, variant_encoding, suffix_bits, absolute in _spellings(name, encoding):
            if spelling in variants:
                raise AssemblerError(f'Mnemonic {spelling} is spelled by more than one encoding')
            variants[spelling] = variant_encoding, suffix_bits, absolute
    return variants


VARIANTS = _build_variants()


def parse(text: str) -> tuple[str, list[Operand]]:
    try:
        return OperandTransformer().transform(asm_parser.parse(text))
    except LarkError as e:
        raise AssemblerError(f'Cannot parse "{text}": {e}') from e


def assemble(text: str, address: int = 0) -> int:
    """Encode the generic (non pseudo-op) text form of an instruction."""
    mnemonic, operands = parse(text)
    if mnemonic not in VARIANTS:
        raise AssemblerError(f'Unknown mnemonic {mnemonic}')
    encoding, suffix_bits, absolute = VARIANTS[mnemonic]
    if len(operands) != len(encoding.slots):
        raise AssemblerError(f'{mnemonic} expects {len(encoding.slots)} operands, got {len(operands)}: {text}')
    word = encoding.base_word() | suffix_bits
    for slot, operand in zip(encoding.slots, operands):
        word |= slot.place(operand, address, absolute)
    return word & 0xffffffff
