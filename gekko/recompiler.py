import concurrent.futures
import dataclasses
import logging
from collections.abc import Iterable, Sequence
import numpy as np
from gekko.config import DEFAULT_CONFIG, EmitterConfig
from gekko.decoder import decode
from gekko.fields import EncodedInstruction
from gekko.fragments import Fragment


logger = logging.getLogger(__name__)

WORD_SIZE = 4
DEFAULT_CHUNK_SIZE = 0x400


@dataclasses.dataclass(frozen=True)
class RecompiledInstruction:
    address: int
    fragment: Fragment
    text: str
    encoded: EncodedInstruction
    valid: bool = True

    def render(self, config: EmitterConfig = DEFAULT_CONFIG) -> str:
        return self.fragment.render(config)


def words_from_bytes(data: bytes) -> list[EncodedInstruction]:
    if len(data) % WORD_SIZE != 0:
        raise ValueError(f'Image size {len(data)} is not a multiple of {WORD_SIZE}')
    return [int(word) for word in np.frombuffer(data, dtype='>u4')]


def _recompile_chunk(words: Sequence[EncodedInstruction], base_address: int) -> list[RecompiledInstruction]:
    recompiled = []
    for i, encoded in enumerate(words):
        address = (base_address + i * WORD_SIZE) & 0xffffffff
        instruction = decode(encoded, address)
        if not instruction.is_valid():
            logger.warning(f'0x{address:08X}: {instruction.opcode.cause} (0x{encoded:08X})')
        recompiled.append(RecompiledInstruction(
            address, instruction.emit(), instruction.to_string(), encoded, instruction.is_valid()))
    return recompiled


class Recompiler:
    def __init__(self, config: EmitterConfig = DEFAULT_CONFIG, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.config = config
        self.chunk_size = chunk_size

    def recompile_word(self, encoded: EncodedInstruction, address: int) -> RecompiledInstruction:
        return _recompile_chunk((encoded,), address)[0]

    def recompile_words(
            self,
            words: Iterable[EncodedInstruction],
            base_address: int,
            executor: concurrent.futures.Executor | None = None) -> list[RecompiledInstruction]:
        words = list(words)
        chunks = [words[start:start + self.chunk_size] for start in range(0, len(words), self.chunk_size)]
        bases = [base_address + start * WORD_SIZE for start in range(0, len(words), self.chunk_size)]
        if executor is None:
            results = map(_recompile_chunk, chunks, bases)
        else:
            results = executor.map(_recompile_chunk, chunks, bases)
        recompiled = [instruction for chunk in results for instruction in chunk]
        invalid = sum(1 for instruction in recompiled if not instruction.valid)
        logger.info(f'Recompiled {len(recompiled)} instructions from 0x{base_address:08X}, {invalid} unrecognized')
        return recompiled

    def recompile_image(
            self,
            data: bytes,
            base_address: int,
            executor: concurrent.futures.Executor | None = None) -> list[RecompiledInstruction]:
        return self.recompile_words(words_from_bytes(data), base_address, executor)

    def render(self, recompiled: Iterable[RecompiledInstruction]) -> str:
        """C text with a label and a comment per instruction."""
        lines = []
        for instruction in recompiled:
            lines.append(f'{self.config.label(instruction.address)}:  /* {instruction.text} */')
            lines.extend(f'    {line}' for line in instruction.fragment.render(self.config).splitlines())
        return '\n'.join(lines)
