import dataclasses
import json


GUEST_BASE = 0x80000000


@dataclasses.dataclass(frozen=True)
class EmitterConfig:
    """Names of the runtime symbols referenced by emitted fragments."""
    guest_base: int = GUEST_BASE
    memory_symbol: str = 'mem'
    translate_function: str = 'translate_address'
    label_prefix: str = 'L_'
    function_prefix: str = 'fn_'
    jump_indirect_function: str = 'jump_indirect'
    call_indirect_function: str = 'call_indirect'

    def label(self, address: int) -> str:
        return f'{self.label_prefix}{address:08x}'

    def function(self, address: int) -> str:
        return f'{self.function_prefix}{address:08x}'

    def to_dict(self) -> dict:
        data = dataclasses.asdict(self)
        data['guest_base'] = f'0x{self.guest_base:08X}'
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'EmitterConfig':
        known = {field.name for field in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f'Unknown emitter config keys: {", ".join(sorted(unknown))}')
        values = dict(data)
        if isinstance(values.get('guest_base'), str):
            values['guest_base'] = int(values['guest_base'], 16)
        return cls(**values)

    def save(self, path: str) -> None:
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> 'EmitterConfig':
        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))


DEFAULT_CONFIG = EmitterConfig()
