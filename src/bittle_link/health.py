import logging
import os
from dataclasses import dataclass
from pathlib import Path

from bittle_link.adapters.pyserial_transport import list_serial_ports
from bittle_link.config import BittleLinkConfig
from bittle_link.domain.commands import is_known_skill

logger = logging.getLogger(__name__)

CRITICAL_CHECKS = {"socket_dir"}


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


def run_startup_checks(config: BittleLinkConfig) -> list[HealthCheckResult]:
    results = [
        _check_serial_ports(),
        _check_configured_port(config),
        _check_socket_dir(config),
        _check_skill_codes(config),
    ]

    passed = sum(1 for r in results if r.passed)

    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    return any(not r.passed and r.name in CRITICAL_CHECKS for r in results)


def _check_serial_ports() -> HealthCheckResult:
    name = "serial_ports"
    try:
        ports = list_serial_ports()
    except Exception as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))
    if not ports:
        return HealthCheckResult(name=name, passed=False, detail="No serial ports found")
    return HealthCheckResult(name=name, passed=True, detail=", ".join(ports))


def _check_configured_port(config: BittleLinkConfig) -> HealthCheckResult:
    name = "configured_port"
    if not config.serial_port:
        return HealthCheckResult(name=name, passed=True, detail="Auto-detect (first available port)")
    if "://" in config.serial_port:
        return HealthCheckResult(name=name, passed=True, detail=f"URL handler {config.serial_port}")
    if Path(config.serial_port).exists() or config.serial_port in list_serial_ports():
        return HealthCheckResult(name=name, passed=True, detail=f"{config.serial_port} present")
    return HealthCheckResult(name=name, passed=False, detail=f"{config.serial_port} not found")


def _check_socket_dir(config: BittleLinkConfig) -> HealthCheckResult:
    name = "socket_dir"
    directory = Path(config.socket_path).parent
    if not directory.is_dir():
        return HealthCheckResult(name=name, passed=False, detail=f"{directory} does not exist")
    if not os.access(directory, os.W_OK):
        return HealthCheckResult(name=name, passed=False, detail=f"{directory} is not writable")
    return HealthCheckResult(name=name, passed=True, detail=str(directory))


def _check_skill_codes(config: BittleLinkConfig) -> HealthCheckResult:
    name = "skill_codes"
    skills = [config.task_creation_skill, config.overdue_skill, *config.reward_skills()]
    unknown = [code for code in skills if not is_known_skill(code)]
    if unknown:
        return HealthCheckResult(name=name, passed=False, detail=f"Not in skill catalog: {', '.join(unknown)}")
    return HealthCheckResult(name=name, passed=True, detail=f"{len(skills)} skills known")
