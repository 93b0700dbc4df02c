"""A scripted stand-in for :class:`kubeworld_toolkit.runner.CommandRunner`."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence

from kubeworld_toolkit.runner import CommandError

Result = bool | str | Callable[[list[str]], "bool | str"]


def sequence(*results: bool | str) -> Callable[[list[str]], bool | str]:
    """Return a rule result that yields ``results`` in order, then repeats the last."""

    remaining = list(results)

    def next_result(_command: list[str]) -> bool | str:
        if len(remaining) > 1:
            return remaining.pop(0)
        return remaining[0]

    return next_result


class FakeRunner:
    """Record commands and answer them from substring rules.

    A rule result of ``False`` makes ``run``/``capture`` raise ``CommandError`` and
    ``succeeds`` return ``False``; ``True`` is a silent success; a string is the
    captured stdout. Unmatched commands succeed with empty output.
    """

    def __init__(self, rules: Iterable[tuple[str, Result]] = (), *, dry_run: bool = False):
        self.rules = list(rules)
        self.dry_run = dry_run
        self.env: dict[str, str] = {}
        self.logger = logging.getLogger("kubeworld.tests.runner")
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []
        self.call_envs: list[Mapping[str, str] | None] = []

    def on(self, pattern: str, result: Result) -> "FakeRunner":
        self.rules.insert(0, (pattern, result))
        return self

    def commands(self) -> list[str]:
        return [" ".join(call) for call in self.calls]

    def matching(self, pattern: str) -> list[str]:
        return [command for command in self.commands() if pattern in command]

    def input_for(self, pattern: str) -> str | None:
        for call, stdin in zip(self.calls, self.inputs):
            if pattern in " ".join(call):
                return stdin
        return None

    def _resolve(self, command: Sequence[str], stdin: str | None, env) -> bool | str:
        command = [str(part) for part in command]
        self.calls.append(command)
        self.inputs.append(stdin)
        self.call_envs.append(env)
        text = " ".join(command)
        for pattern, result in self.rules:
            if pattern in text:
                return result(command) if callable(result) else result
        return True

    def run(self, command, *, input=None, env=None) -> None:
        if self._resolve(command, input, env) is False:
            raise CommandError(list(command), 1, stderr="scripted failure")

    def capture(self, command, *, input=None) -> str:
        result = self._resolve(command, input, None)
        if result is False:
            raise CommandError(list(command), 1, stderr="scripted failure")
        return result if isinstance(result, str) else ""

    def succeeds(self, command, *, timeout=None) -> bool:
        return self._resolve(command, None, None) is not False

    def apply_manifest(self, manifest: str) -> None:
        self.run(["kubectl", "apply", "-f", "-"], input=manifest)
