"""Structured code fragments.

A fragment is a short sequence of statement nodes describing the effect of one
guest instruction. The external assembler can inspect the nodes directly
(referenced registers, branch targets) or render them to C text.
"""
import abc
import dataclasses
from gekko.config import EmitterConfig, DEFAULT_CONFIG


U8 = 'u8'
U16 = 'u16'
U32 = 'u32'
U64 = 'u64'
S8 = 's8'
S16 = 's16'
S32 = 's32'
S64 = 's64'
F32 = 'f32'
F64 = 'f64'
BOOL = 'bool'

INTEGER_WIDTHS = {U8: 8, S8: 8, U16: 16, S16: 16, U32: 32, S32: 32, U64: 64, S64: 64, BOOL: 1}
SIGNED_TYPES = frozenset((S8, S16, S32, S64))
FLOAT_TYPES = frozenset((F32, F64))


def is_float(ctype: str) -> bool:
    return ctype in FLOAT_TYPES


def is_signed(ctype: str) -> bool:
    return ctype in SIGNED_TYPES


class Expression(abc.ABC):
    ctype: str

    @abc.abstractmethod
    def render(self, config: EmitterConfig) -> str: ...

    def children(self) -> tuple['Expression', ...]:
        return ()

    def names(self) -> set[str]:
        names = set()
        for child in self.children():
            names |= child.names()
        return names

    def _binary(self, op: str, other: 'Expression | int | float', ctype: str | None = None) -> 'Binary':
        return Binary(op, self, as_expression(other, self.ctype), ctype or self.ctype)

    def __add__(self, other):
        if isinstance(other, int) and other < 0 and not is_float(self.ctype):
            return self._binary('-', -other)
        return self._binary('+', other)

    def __sub__(self, other):
        return self._binary('-', other)

    def __mul__(self, other):
        return self._binary('*', other)

    def __truediv__(self, other):
        return self._binary('/', other)

    def __and__(self, other):
        return self._binary('&', other)

    def __or__(self, other):
        return self._binary('|', other)

    def __xor__(self, other):
        return self._binary('^', other)

    def __lshift__(self, other):
        return self._binary('<<', other)

    def __rshift__(self, other):
        return self._binary('>>', other)

    def __invert__(self):
        return Unary('~', self, self.ctype)

    def __neg__(self):
        return Unary('-', self, self.ctype)

    def lt(self, other) -> 'Binary':
        return self._binary('<', other, BOOL)

    def le(self, other) -> 'Binary':
        return self._binary('<=', other, BOOL)

    def gt(self, other) -> 'Binary':
        return self._binary('>', other, BOOL)

    def ge(self, other) -> 'Binary':
        return self._binary('>=', other, BOOL)

    def eq(self, other) -> 'Binary':
        return self._binary('==', other, BOOL)

    def ne(self, other) -> 'Binary':
        return self._binary('!=', other, BOOL)

    def logical_and(self, other: 'Expression') -> 'Binary':
        return Binary('&&', self, other, BOOL)

    def logical_or(self, other: 'Expression') -> 'Binary':
        return Binary('||', self, other, BOOL)

    def cast(self, ctype: str) -> 'Expression':
        return self if ctype == self.ctype else Cast(self, ctype)

    def select(self, if_true, if_false, ctype: str | None = None) -> 'Ternary':
        ctype = ctype or (if_true.ctype if isinstance(if_true, Expression) else U32)
        return Ternary(self, as_expression(if_true, ctype), as_expression(if_false, ctype), ctype)


def as_expression(value: 'Expression | int | float', ctype: str) -> Expression:
    if isinstance(value, Expression):
        return value
    return Const(value, ctype)


def _operand(expression: Expression, config: EmitterConfig) -> str:
    rendered = expression.render(config)
    return f'({rendered})' if isinstance(expression, (Binary, Ternary)) else rendered


@dataclasses.dataclass(frozen=True)
class Const(Expression):
    value: int | float
    ctype: str = U32

    def render(self, config: EmitterConfig) -> str:
        if self.ctype == BOOL:
            return '1' if self.value else '0'
        if is_float(self.ctype):
            return repr(float(self.value))
        if is_signed(self.ctype):
            return str(self.value)
        value = self.value & ((1 << INTEGER_WIDTHS[self.ctype]) - 1)
        return str(value) if value < 10 else f'0x{value:x}'


@dataclasses.dataclass(frozen=True)
class Var(Expression):
    name: str
    ctype: str = U32

    def render(self, config: EmitterConfig) -> str:
        return self.name

    def names(self) -> set[str]:
        return {self.name}


@dataclasses.dataclass(frozen=True)
class Index(Expression):
    array: str
    index: Expression
    ctype: str = U32

    def render(self, config: EmitterConfig) -> str:
        return f'{self.array}[{self.index.render(config)}]'

    def children(self) -> tuple[Expression, ...]:
        return self.index,

    def names(self) -> set[str]:
        return {self.array} | self.index.names()


@dataclasses.dataclass(frozen=True)
class Binary(Expression):
    op: str
    left: Expression
    right: Expression
    ctype: str = U32

    def render(self, config: EmitterConfig) -> str:
        return f'{_operand(self.left, config)} {self.op} {_operand(self.right, config)}'

    def children(self) -> tuple[Expression, ...]:
        return self.left, self.right


@dataclasses.dataclass(frozen=True)
class Unary(Expression):
    op: str
    operand: Expression
    ctype: str = U32

    def render(self, config: EmitterConfig) -> str:
        return f'{self.op}{_operand(self.operand, config)}'

    def children(self) -> tuple[Expression, ...]:
        return self.operand,


@dataclasses.dataclass(frozen=True)
class Cast(Expression):
    operand: Expression
    ctype: str = U32

    def render(self, config: EmitterConfig) -> str:
        return f'({self.ctype}){_operand(self.operand, config)}'

    def children(self) -> tuple[Expression, ...]:
        return self.operand,


@dataclasses.dataclass(frozen=True)
class Ternary(Expression):
    condition: Expression
    if_true: Expression
    if_false: Expression
    ctype: str = U32

    def render(self, config: EmitterConfig) -> str:
        return (
            f'{_operand(self.condition, config)} ? {_operand(self.if_true, config)} '
            f': {_operand(self.if_false, config)}')

    def children(self) -> tuple[Expression, ...]:
        return self.condition, self.if_true, self.if_false


@dataclasses.dataclass(frozen=True)
class Intrinsic(Expression):
    function: str
    arguments: tuple[Expression, ...]
    ctype: str = U32

    def render(self, config: EmitterConfig) -> str:
        return f'{self.function}({", ".join(argument.render(config) for argument in self.arguments)})'

    def children(self) -> tuple[Expression, ...]:
        return self.arguments


@dataclasses.dataclass(frozen=True)
class Address:
    """Host pointer for a guest effective address.

    Direct addresses index the memory buffer at a fixed offset from the guest
    base; translated ones go through the runtime translation function.
    """
    ea: Expression
    translated: bool = False

    def render(self, config: EmitterConfig) -> str:
        if self.translated:
            return f'{config.translate_function}({self.ea.render(config)})'
        return f'({config.memory_symbol} + ({_operand(self.ea, config)} - 0x{config.guest_base:x}))'

    def names(self) -> set[str]:
        return self.ea.names()


@dataclasses.dataclass(frozen=True)
class Load(Expression):
    address: Address
    ctype: str = U32

    def render(self, config: EmitterConfig) -> str:
        return f'*({self.ctype} *){self.address.render(config)}'

    def children(self) -> tuple[Expression, ...]:
        return self.address.ea,


class Statement(abc.ABC):
    @abc.abstractmethod
    def lines(self, config: EmitterConfig) -> list[str]: ...

    def expressions(self) -> tuple[Expression, ...]:
        return ()

    def names(self) -> set[str]:
        names = set()
        for expression in self.expressions():
            names |= expression.names()
        return names

    def declared(self) -> set[str]:
        return set()

    def targets(self) -> set[int]:
        return set()


@dataclasses.dataclass(frozen=True)
class Assign(Statement):
    target: Var | Index
    value: Expression

    def lines(self, config: EmitterConfig) -> list[str]:
        return [f'{self.target.render(config)} = {self.value.render(config)};']

    def expressions(self) -> tuple[Expression, ...]:
        return self.target, self.value


@dataclasses.dataclass(frozen=True)
class Declare(Statement):
    name: str
    ctype: str
    value: Expression

    @property
    def var(self) -> Var:
        return Var(self.name, self.ctype)

    def lines(self, config: EmitterConfig) -> list[str]:
        return [f'{self.ctype} {self.name} = {self.value.render(config)};']

    def expressions(self) -> tuple[Expression, ...]:
        return self.value,

    def declared(self) -> set[str]:
        return {self.name}


@dataclasses.dataclass(frozen=True)
class Store(Statement):
    address: Address
    value: Expression
    ctype: str = U32

    def lines(self, config: EmitterConfig) -> list[str]:
        return [f'*({self.ctype} *){self.address.render(config)} = {self.value.render(config)};']

    def expressions(self) -> tuple[Expression, ...]:
        return self.address.ea, self.value


@dataclasses.dataclass(frozen=True)
class If(Statement):
    condition: Expression
    body: tuple[Statement, ...]

    def lines(self, config: EmitterConfig) -> list[str]:
        condition = self.condition.render(config)
        body = [line for statement in self.body for line in statement.lines(config)]
        if len(body) == 1:
            return [f'if ({condition}) {body[0]}']
        return [f'if ({condition}) {{', *(f'    {line}' for line in body), '}']

    def expressions(self) -> tuple[Expression, ...]:
        return self.condition,

    def names(self) -> set[str]:
        names = super().names()
        for statement in self.body:
            names |= statement.names()
        return names

    def declared(self) -> set[str]:
        return set().union(*(statement.declared() for statement in self.body))

    def targets(self) -> set[int]:
        return set().union(*(statement.targets() for statement in self.body))


@dataclasses.dataclass(frozen=True)
class Goto(Statement):
    target: int

    def lines(self, config: EmitterConfig) -> list[str]:
        return [f'goto {config.label(self.target)};']

    def targets(self) -> set[int]:
        return {self.target}


@dataclasses.dataclass(frozen=True)
class CallDirect(Statement):
    target: int

    def lines(self, config: EmitterConfig) -> list[str]:
        return [f'{config.function(self.target)}();']

    def targets(self) -> set[int]:
        return {self.target}


@dataclasses.dataclass(frozen=True)
class Return(Statement):
    def lines(self, config: EmitterConfig) -> list[str]:
        return ['return;']


@dataclasses.dataclass(frozen=True)
class JumpIndirect(Statement):
    target: Expression

    def lines(self, config: EmitterConfig) -> list[str]:
        return [f'{config.jump_indirect_function}({self.target.render(config)});']

    def expressions(self) -> tuple[Expression, ...]:
        return self.target,


@dataclasses.dataclass(frozen=True)
class CallIndirect(Statement):
    target: Expression

    def lines(self, config: EmitterConfig) -> list[str]:
        return [f'{config.call_indirect_function}({self.target.render(config)});']

    def expressions(self) -> tuple[Expression, ...]:
        return self.target,


@dataclasses.dataclass(frozen=True)
class Invoke(Statement):
    function: str
    arguments: tuple[Expression, ...] = ()

    def lines(self, config: EmitterConfig) -> list[str]:
        return [f'{self.function}({", ".join(argument.render(config) for argument in self.arguments)});']

    def expressions(self) -> tuple[Expression, ...]:
        return self.arguments


@dataclasses.dataclass(frozen=True)
class Nop(Statement):
    note: str = ''

    def lines(self, config: EmitterConfig) -> list[str]:
        return [f';  /* {self.note} */' if self.note else ';']


@dataclasses.dataclass(frozen=True)
class Fragment:
    address: int
    statements: tuple[Statement, ...]

    def render(self, config: EmitterConfig = DEFAULT_CONFIG) -> str:
        lines = [line for statement in self.statements for line in statement.lines(config)]
        if self.declared():
            lines = ['{', *(f'    {line}' for line in lines), '}']
        return '\n'.join(lines)

    def declared(self) -> set[str]:
        return set().union(*(statement.declared() for statement in self.statements))

    def registers(self) -> frozenset[str]:
        """Names of the context registers and arrays the fragment touches."""
        names = set().union(*(statement.names() for statement in self.statements))
        return frozenset(names - self.declared())

    def branch_targets(self) -> frozenset[int]:
        return frozenset(set().union(*(statement.targets() for statement in self.statements)))

    def __str__(self) -> str:
        return self.render()
