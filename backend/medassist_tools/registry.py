from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable


StrategyHandler = Callable[[Path], str]


@dataclass
class StrategyDefinition:
    name: str
    handler: StrategyHandler
    requires: tuple[str, ...] = ()
    min_chars: int = 1
    ocr_output: bool = False


class StrategyRegistry:
    """Named extraction strategies and the ordered chain tried for each file family."""

    def __init__(self) -> None:
        self._strategies: dict[str, StrategyDefinition] = {}
        self._chains: dict[str, list[str]] = {}
        self._aliases: dict[str, str] = {}

    def register(self, strategy: StrategyDefinition) -> None:
        self._strategies[strategy.name] = strategy

    def set_chain(self, family: str, names: list[str]) -> None:
        missing = [name for name in names if name not in self._strategies]
        if missing:
            raise KeyError(f"Strategy not found: {', '.join(missing)}")
        self._chains[family] = list(names)

    def add_alias(self, alias: str, target: str) -> None:
        self._aliases[alias] = target

    def chain_for(self, family: str) -> list[StrategyDefinition]:
        canonical = self._aliases.get(family, family)
        names = self._chains.get(canonical)
        if names is None:
            raise KeyError(f"No extraction chain for family: {family}")
        return [self._strategies[name] for name in names]

    def describe(self) -> dict[str, list[str]]:
        chains = {family: list(names) for family, names in self._chains.items()}
        for alias, target in self._aliases.items():
            chains[alias] = list(self._chains.get(target, []))
        return dict(sorted(chains.items()))
