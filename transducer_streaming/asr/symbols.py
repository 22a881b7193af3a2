"""
Token symbol tables.

Reads the `tokens.txt` format shipped with exported transducer models: one
`<symbol> <id>` pair per line.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, Sequence, Tuple, Union

from .interfaces import SymbolTable

logger = logging.getLogger(__name__)

WORD_BOUNDARY = "▁"  # SentencePiece word marker


class TokenSymbolTable(SymbolTable):
    """In-memory id -> symbol map with SentencePiece-style rendering."""

    def __init__(self, id_to_symbol: Dict[int, str]):
        self.id_to_symbol = dict(id_to_symbol)
        self.symbol_to_id = {sym: idx for idx, sym in self.id_to_symbol.items()}

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, int]]) -> "TokenSymbolTable":
        return cls({int(idx): sym for sym, idx in pairs})

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "TokenSymbolTable":
        path = Path(path)
        pairs = []
        with open(path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.rstrip("\n")
                if not line.strip():
                    continue
                parts = line.split()
                if len(parts) == 1:
                    # A bare id means the symbol is whitespace.
                    sym, idx = " ", parts[0]
                elif len(parts) == 2:
                    sym, idx = parts
                else:
                    raise ValueError(f"{path}:{lineno}: expected '<symbol> <id>', got {line!r}")
                pairs.append((sym, int(idx)))
        table = cls.from_pairs(pairs)
        logger.info("Loaded %d symbols from %s", len(table), path)
        return table

    def __len__(self) -> int:
        return len(self.id_to_symbol)

    def __getitem__(self, token: int) -> str:
        return self.id_to_symbol[token]

    def __contains__(self, token: int) -> bool:
        return token in self.id_to_symbol

    def decode(self, tokens: Sequence[int]) -> str:
        text = "".join(self.id_to_symbol.get(t, "") for t in tokens)
        return text.replace(WORD_BOUNDARY, " ").strip()
