"""Reference evaluator for fragments.

Runs the statements of a fragment against an ``ExecutionContext`` the way the
emitted C would, with guest memory held big-endian in a numpy byte buffer.
Control transfers end execution and are reported to the caller.
"""
import dataclasses
import math
from collections.abc import Callable
import numpy as np
from gekko.config import DEFAULT_CONFIG, EmitterConfig
from gekko.fragments import (
    Address, Assign, Binary, CallDirect, CallIndirect, Cast, Const, Declare, Expression, Fragment, Goto, If, Index,
    Intrinsic, Invoke, JumpIndirect, Load, Nop, Return, Statement, Store, Ternary, Unary, Var,
    BOOL, F32, F64, INTEGER_WIDTHS, S8, S16, S32, S64, U8, U16, U32, U64, is_float, is_signed)
from gekko.registers import ExecutionContext, RuntimeRegister


Value = int | float

_MEMORY_DTYPES = {
    U8: np.dtype('>u1'), S8: np.dtype('>i1'), U16: np.dtype('>u2'), S16: np.dtype('>i2'),
    U32: np.dtype('>u4'), S32: np.dtype('>i4'), U64: np.dtype('>u8'), S64: np.dtype('>i8')
}

# GQR type field -> (memory type, element size); types 1-3 are reserved and read as floats
_QUANTIZED_TYPES = {
    0: (F32, 4), 1: (F32, 4), 2: (F32, 4), 3: (F32, 4), 4: (U8, 1), 5: (U16, 2), 6: (S8, 1), 7: (S16, 2)
}


class InterpreterError(Exception):
    pass


@dataclasses.dataclass(frozen=True)
class Transfer:
    kind: str
    target: int | None = None


def translate_address(address: int) -> int:
    """Map a guest virtual address to a physical offset into main memory."""
    if 0x80000000 <= address < 0x81800000 or 0xC0000000 <= address < 0xC1800000:
        return address & 0x01FFFFFF
    return address


def wrap(value: Value, ctype: str) -> Value:
    if ctype == BOOL:
        return 1 if value else 0
    if ctype == F64:
        return float(value)
    if ctype == F32:
        return float(np.float32(value))
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0
        value = int(value)
    width = INTEGER_WIDTHS[ctype]
    value &= (1 << width) - 1
    if is_signed(ctype) and value >= 1 << (width - 1):
        value -= 1 << width
    return value


def _float_bits(value: float, float_type, integer_type) -> int:
    return int(np.array([value], dtype=float_type).view(integer_type)[0])


def _bits_float(value: int, integer_type, float_type) -> float:
    return float(np.array([value], dtype=integer_type).view(float_type)[0])


def _saturate_word(value: float) -> int:
    if math.isnan(value):
        return -0x80000000
    return int(min(max(value, -0x80000000), 0x7fffffff))


def _round_to_word(value: float) -> int:
    return _saturate_word(float(np.rint(value)) if math.isfinite(value) else value)


def _truncate_to_word(value: float) -> int:
    return _saturate_word(float(math.trunc(value)) if math.isfinite(value) else value)


def _byte_swap(value: int, size: int) -> int:
    return int.from_bytes(value.to_bytes(size, 'big'), 'little')


def _float_sqrt(value: float) -> float:
    with np.errstate(invalid='ignore'):
        return float(np.sqrt(np.float64(value)))


def _quantization_scale(bits: int) -> int:
    return bits - 0x40 if bits & 0x20 else bits


_INTRINSICS: dict[str, Callable[..., Value]] = {
    'cntlzw': lambda value: 32 - value.bit_length(),
    'bswap16': lambda value: _byte_swap(value, 2),
    'bswap32': lambda value: _byte_swap(value, 4),
    'f32_bits': lambda value: _float_bits(value, np.float32, np.uint32),
    'bits_f32': lambda value: _bits_float(value, np.uint32, np.float32),
    'f64_bits': lambda value: _float_bits(value, np.float64, np.uint64),
    'bits_f64': lambda value: _bits_float(value, np.uint64, np.float64),
    'fctiw': _round_to_word,
    'fctiwz': _truncate_to_word,
    'sqrt': _float_sqrt,
    'fabs': math.fabs,
}

_COMPARISONS: dict[str, Callable[[Value, Value], bool]] = {
    '<': lambda left, right: left < right,
    '<=': lambda left, right: left <= right,
    '>': lambda left, right: left > right,
    '>=': lambda left, right: left >= right,
    '==': lambda left, right: left == right,
    '!=': lambda left, right: left != right,
}

_ARITHMETIC: dict[str, Callable[[Value, Value], Value]] = {
    '+': lambda left, right: left + right,
    '-': lambda left, right: left - right,
    '*': lambda left, right: left * right,
    '&': lambda left, right: left & right,
    '|': lambda left, right: left | right,
    '^': lambda left, right: left ^ right,
    '<<': lambda left, right: left << right,
    '>>': lambda left, right: left >> right,
}


class Interpreter:
    def __init__(
            self,
            context: ExecutionContext | None = None,
            config: EmitterConfig = DEFAULT_CONFIG,
            translate: Callable[[int], int] = translate_address):
        self.context = context if context is not None else ExecutionContext()
        self.config = config
        self.translate = translate
        self._scalars: dict[str, RuntimeRegister] = {
            **{register.register.name: register for register in self.context.gpr},
            **{register.register.name: register for register in self.context.fpr},
            **self.context.special
        }
        self._arrays = self.context.arrays()
        self._locals: dict[str, Value] = {}
        self._evaluators: dict[type, Callable[[Expression], Value]] = {
            Const: self._evaluate_const,
            Var: lambda expression: self._read_name(expression.name),
            Index: lambda expression: self._element(expression.array, self.evaluate(expression.index)).value,
            Binary: self._evaluate_binary,
            Unary: self._evaluate_unary,
            Cast: lambda expression: wrap(self.evaluate(expression.operand), expression.ctype),
            Ternary: self._evaluate_ternary,
            Intrinsic: self._evaluate_intrinsic,
            Load: lambda expression: self.read_memory(self._physical(expression.address), expression.ctype),
        }
        self._executors: dict[type, Callable[[Statement], Transfer | None]] = {
            Assign: self._execute_assign,
            Declare: self._execute_declare,
            Store: self._execute_store,
            If: self._execute_if,
            Goto: lambda statement: Transfer('goto', statement.target),
            CallDirect: lambda statement: Transfer('call', statement.target),
            Return: lambda statement: Transfer('return'),
            JumpIndirect: lambda statement: Transfer('jump', self.evaluate(statement.target)),
            CallIndirect: lambda statement: Transfer('call_indirect', self.evaluate(statement.target)),
            Invoke: self._execute_invoke,
            Nop: lambda statement: None,
        }

    def execute(self, fragment: Fragment) -> Transfer | None:
        self._locals = {}
        return self._run(fragment.statements)

    def evaluate(self, expression: Expression) -> Value:
        evaluator = self._evaluators.get(type(expression))
        if evaluator is None:
            raise InterpreterError(f'Cannot evaluate {expression!r}')
        return evaluator(expression)

    def read_memory(self, physical: int, ctype: str) -> Value:
        if ctype == F32:
            return _bits_float(self.read_memory(physical, U32), np.uint32, np.float32)
        dtype = _MEMORY_DTYPES[ctype]
        self._check_range(physical, dtype.itemsize)
        return int(self.context.memory[physical:physical + dtype.itemsize].view(dtype)[0])

    def write_memory(self, physical: int, value: Value, ctype: str):
        if ctype == F32:
            self.write_memory(physical, _float_bits(value, np.float32, np.uint32), U32)
            return
        dtype = _MEMORY_DTYPES[ctype]
        self._check_range(physical, dtype.itemsize)
        self.context.memory[physical:physical + dtype.itemsize] = np.array(
            [wrap(value, ctype)], dtype=dtype).view(np.uint8)

    def read_word(self, address: int) -> int:
        return self.read_memory(self.translate(address), U32)

    def write_word(self, address: int, value: int):
        self.write_memory(self.translate(address), value, U32)

    def _run(self, statements: tuple[Statement, ...]) -> Transfer | None:
        for statement in statements:
            executor = self._executors.get(type(statement))
            if executor is None:
                raise InterpreterError(f'Cannot execute {statement!r}')
            transfer = executor(statement)
            if transfer is not None:
                return transfer
        return None

    def _execute_assign(self, statement: Assign) -> None:
        value = wrap(self.evaluate(statement.value), statement.target.ctype)
        if isinstance(statement.target, Index):
            self._element(statement.target.array, self.evaluate(statement.target.index)).value = value
        else:
            self._write_name(statement.target.name, value)

    def _execute_declare(self, statement: Declare) -> None:
        self._locals[statement.name] = wrap(self.evaluate(statement.value), statement.ctype)

    def _execute_store(self, statement: Store) -> None:
        self.write_memory(self._physical(statement.address), self.evaluate(statement.value), statement.ctype)

    def _execute_if(self, statement: If) -> Transfer | None:
        if self.evaluate(statement.condition):
            return self._run(statement.body)
        return None

    def _execute_invoke(self, statement: Invoke) -> Transfer | None:
        if statement.function in ('trap', 'system_call'):
            return Transfer(statement.function)
        if statement.function == 'psq_store':
            self._quantized_store(*(self.evaluate(argument) for argument in statement.arguments))
            return None
        raise InterpreterError(f'Unknown runtime function {statement.function}')

    def _evaluate_const(self, expression: Const) -> Value:
        return wrap(expression.value, expression.ctype)

    def _evaluate_unary(self, expression: Unary) -> Value:
        value = self.evaluate(expression.operand)
        if expression.op == '~':
            return wrap(~value, expression.ctype)
        return wrap(-value, expression.ctype)

    def _evaluate_ternary(self, expression: Ternary) -> Value:
        chosen = expression.if_true if self.evaluate(expression.condition) else expression.if_false
        return wrap(self.evaluate(chosen), expression.ctype)

    def _evaluate_intrinsic(self, expression: Intrinsic) -> Value:
        arguments = [self.evaluate(argument) for argument in expression.arguments]
        if expression.function == 'psq_load':
            return self._quantized_load(*arguments)
        if expression.function not in _INTRINSICS:
            raise InterpreterError(f'Unknown intrinsic {expression.function}')
        return wrap(_INTRINSICS[expression.function](*arguments), expression.ctype)

    def _evaluate_binary(self, expression: Binary) -> Value:
        op = expression.op
        if op == '&&':
            return 1 if self.evaluate(expression.left) and self.evaluate(expression.right) else 0
        if op == '||':
            return 1 if self.evaluate(expression.left) or self.evaluate(expression.right) else 0
        left = self.evaluate(expression.left)
        right = self.evaluate(expression.right)
        if op in _COMPARISONS:
            return 1 if _COMPARISONS[op](left, right) else 0
        if op in _ARITHMETIC:
            return wrap(_ARITHMETIC[op](left, right), expression.ctype)
        if op == '/':
            return wrap(self._divide(left, right, expression.ctype), expression.ctype)
        raise InterpreterError(f'Unknown operator {op}')

    @staticmethod
    def _divide(left: Value, right: Value, ctype: str) -> Value:
        if is_float(ctype):
            with np.errstate(divide='ignore', invalid='ignore'):
                return float(np.float64(left) / np.float64(right))
        if right == 0:
            raise InterpreterError('Division by zero')
        quotient = abs(left) // abs(right)
        return -quotient if (left < 0) != (right < 0) else quotient

    def _read_name(self, name: str) -> Value:
        if name in self._locals:
            return self._locals[name]
        if name not in self._scalars:
            raise InterpreterError(f'Unknown name {name}')
        return self._scalars[name].value

    def _write_name(self, name: str, value: Value):
        if name in self._locals:
            self._locals[name] = value
        elif name in self._scalars:
            self._scalars[name].value = value
        else:
            raise InterpreterError(f'Unknown name {name}')

    def _element(self, array: str, index: int) -> RuntimeRegister:
        if array not in self._arrays:
            raise InterpreterError(f'Unknown array {array}')
        elements = self._arrays[array]
        if not 0 <= index < len(elements):
            raise InterpreterError(f'Index {index} out of range for {array}')
        return elements[index]

    def _physical(self, address: Address) -> int:
        ea = self.evaluate(address.ea) & 0xffffffff
        if address.translated:
            return self.translate(ea)
        return (ea - self.config.guest_base) & 0xffffffff

    def _check_range(self, physical: int, size: int):
        if physical < 0 or physical + size > len(self.context.memory):
            raise InterpreterError(f'Memory access 0x{physical:08X} out of range')

    def _quantized_load(self, ea: int, gqr: int, slot: int) -> float:
        memory_type, size = _QUANTIZED_TYPES[(gqr >> 16) & 7]
        value = self.read_memory(self.translate((ea + slot * size) & 0xffffffff), memory_type)
        if memory_type == F32:
            return value
        return float(np.float32(value * 2.0 ** -_quantization_scale((gqr >> 24) & 0x3f)))

    def _quantized_store(self, ea: int, first: float, second: float, gqr: int, single: int):
        memory_type, size = _QUANTIZED_TYPES[gqr & 7]
        scale = _quantization_scale((gqr >> 8) & 0x3f)
        for slot, value in enumerate((first,) if single else (first, second)):
            physical = self.translate((ea + slot * size) & 0xffffffff)
            if memory_type == F32:
                self.write_memory(physical, value, F32)
                continue
            width = INTEGER_WIDTHS[memory_type]
            if is_signed(memory_type):
                low, high = -(1 << (width - 1)), (1 << (width - 1)) - 1
            else:
                low, high = 0, (1 << width) - 1
            scaled = value * 2.0 ** scale
            self.write_memory(physical, 0 if math.isnan(scaled) else int(min(max(scaled, low), high)), memory_type)
