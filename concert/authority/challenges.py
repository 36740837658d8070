"""
concert.authority.challenges
----------------------------
DNS-01 challenge providers.

A provider publishes the TXT record the authority checks and removes it
afterwards. Providers are selected by identifier from configuration:

- exec:   runs an operator command `<command> present|cleanup <fqdn> <value>`
- manual: logs the record to create and waits for propagation

Options come from the `dns01` mapping of the deployment file.
"""

from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional
import shlex
import subprocess
import time

from concert.logger import get_logger

log = get_logger("concert.Challenge")


class ChallengeError(Exception):
    pass


class ChallengeProvider:
    name: str = "base"

    def __init__(self, propagation_seconds: float = 0.0, sleep: Optional[Callable[[float], Any]] = None):
        self.propagation_seconds = propagation_seconds
        self._sleep = sleep or time.sleep

    def present(self, domain: str, fqdn: str, value: str) -> None:
        raise NotImplementedError

    def cleanup(self, domain: str, fqdn: str, value: str) -> None:
        raise NotImplementedError

    def wait_for_propagation(self) -> None:
        if self.propagation_seconds > 0:
            log.info(f"[DNS01] waiting {self.propagation_seconds:.0f}s for propagation")
            self._sleep(self.propagation_seconds)


class ExecProvider(ChallengeProvider):
    name = "exec"

    def __init__(self, command: str, timeout: float = 120.0, **kwargs):
        super().__init__(**kwargs)
        if not command:
            raise ChallengeError("exec provider requires 'command'")
        self.command: List[str] = shlex.split(command)
        self.timeout = timeout

    def _run(self, action: str, fqdn: str, value: str) -> None:
        cmd = self.command + [action, fqdn, value]
        try:
            cp = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, check=False)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ChallengeError(f"{action} {fqdn}: {e}") from e
        if cp.returncode != 0:
            raise ChallengeError(f"{action} {fqdn}: rc={cp.returncode} {cp.stderr.strip() or cp.stdout.strip()}")

    def present(self, domain: str, fqdn: str, value: str) -> None:
        self._run("present", fqdn, value)
        log.info(f"[DNS01] presented {fqdn} for {domain}")
        self.wait_for_propagation()

    def cleanup(self, domain: str, fqdn: str, value: str) -> None:
        self._run("cleanup", fqdn, value)
        log.info(f"[DNS01] cleaned up {fqdn}")


class ManualProvider(ChallengeProvider):
    name = "manual"

    def present(self, domain: str, fqdn: str, value: str) -> None:
        log.warning(f"[DNS01] create TXT {fqdn} = {value!r} for {domain}")
        self.wait_for_propagation()

    def cleanup(self, domain: str, fqdn: str, value: str) -> None:
        log.warning(f"[DNS01] TXT {fqdn} may now be removed")


PROVIDERS = {
    ExecProvider.name: ExecProvider,
    ManualProvider.name: ManualProvider,
}


def provider_by_name(name: str, options: Optional[Dict[str, Any]] = None) -> ChallengeProvider:
    options = dict(options or {})
    cls = PROVIDERS.get((name or "").lower())
    if cls is None:
        raise ChallengeError(f"Unknown DNS-01 provider: {name!r} (known: {sorted(PROVIDERS)})")
    kwargs: Dict[str, Any] = {"propagation_seconds": float(options.pop("propagation_seconds", 0.0))}
    if cls is ExecProvider:
        kwargs["command"] = options.pop("command", "")
        if "timeout" in options:
            kwargs["timeout"] = float(options.pop("timeout"))
    if options:
        log.warning(f"[DNS01] ignoring unknown {name} options: {sorted(options)}")
    return cls(**kwargs)
