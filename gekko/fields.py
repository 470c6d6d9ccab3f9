import ctypes
import dataclasses


EncodedInstruction = int


def extract(encoded: EncodedInstruction, start: int, end: int) -> int:
    """Unsigned value of bits start..end (inclusive, bit 0 is the most significant)."""
    return (encoded >> (31 - end)) & ((1 << (end - start + 1)) - 1)


def sign_extend(value: int, width: int) -> int:
    value &= (1 << width) - 1
    return value - (1 << width) if value & (1 << (width - 1)) else value


@dataclasses.dataclass(frozen=True)
class Field:
    name: str
    start: int
    end: int

    @property
    def width(self) -> int:
        return self.end - self.start + 1

    @property
    def shift(self) -> int:
        return 31 - self.end

    @property
    def mask(self) -> int:
        return ((1 << self.width) - 1) << self.shift

    def extract(self, encoded: EncodedInstruction) -> int:
        return extract(encoded, self.start, self.end)

    def insert(self, value: int) -> int:
        return (value & ((1 << self.width) - 1)) << self.shift


@dataclasses.dataclass(frozen=True)
class SignedField(Field):
    def extract(self, encoded: EncodedInstruction) -> int:
        if self.width == 16:
            return ctypes.c_int16(super().extract(encoded)).value
        return sign_extend(super().extract(encoded), self.width)


@dataclasses.dataclass(frozen=True)
class DisplacementField(Field):
    # Word-aligned branch displacement: the two low bits (AA/LK) take part in
    # sign extension and are then cleared.
    def extract(self, encoded: EncodedInstruction) -> int:
        return sign_extend(extract(encoded, self.start, 31), 32 - self.start) & ~3

    def insert(self, value: int) -> int:
        return value & self.mask


@dataclasses.dataclass(frozen=True)
class SplitField(Field):
    # SPR and TBR numbers are stored with their two 5-bit halves swapped.
    def extract(self, encoded: EncodedInstruction) -> int:
        raw = super().extract(encoded)
        return ((raw & 0x1f) << 5) | (raw >> 5)

    def insert(self, value: int) -> int:
        return super().insert(((value & 0x1f) << 5) | ((value >> 5) & 0x1f))


PRIMARY = Field('primary', 0, 5)
XO10 = Field('xo10', 21, 30)
XO9 = Field('xo9', 22, 30)
XO6 = Field('xo6', 25, 30)
XO5 = Field('xo5', 26, 30)

D = Field('d', 6, 10)
A = Field('a', 11, 15)
B = Field('b', 16, 20)
C = Field('c', 21, 25)

OE = Field('oe', 21, 21)
RC = Field('rc', 31, 31)
LK = Field('lk', 31, 31)
AA = Field('aa', 30, 30)

SIMM = SignedField('simm', 16, 31)
UIMM = Field('uimm', 16, 31)
BD = DisplacementField('bd', 16, 29)
LI = DisplacementField('li', 6, 29)

SH = Field('sh', 16, 20)
MB = Field('mb', 21, 25)
ME = Field('me', 26, 30)

CRFD = Field('crfd', 6, 8)
CRFS = Field('crfs', 11, 13)
L = Field('l', 10, 10)
BO = Field('bo', 6, 10)
BI = Field('bi', 11, 15)
CRM = Field('crm', 12, 19)
FM = Field('fm', 7, 14)
SPR = SplitField('spr', 11, 20)
SR = Field('sr', 12, 15)
NB = Field('nb', 16, 20)
TO = Field('to', 6, 10)
FPSCR_IMM = Field('fpscr_imm', 16, 19)

PS_W = Field('ps_w', 16, 16)
PS_I = Field('ps_i', 17, 19)
PS_D = SignedField('ps_d', 20, 31)
PSX_W = Field('psx_w', 21, 21)
PSX_I = Field('psx_i', 22, 24)


ALL = (
    PRIMARY, XO10, XO9, XO6, XO5, D, A, B, C, OE, RC, LK, AA, SIMM, UIMM, BD, LI, SH, MB, ME,
    CRFD, CRFS, L, BO, BI, CRM, FM, SPR, SR, NB, TO, FPSCR_IMM, PS_W, PS_I, PS_D, PSX_W, PSX_I)
