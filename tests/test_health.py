from bittle_link import health
from bittle_link.config import BittleLinkConfig
from bittle_link.health import HealthCheckResult, has_critical_failures, run_startup_checks


def _config(tmp_path, **overrides):
    values = {"socket_path": str(tmp_path / "bittle.sock"), "done_skill2": "kup"}
    values.update(overrides)
    return BittleLinkConfig(**values)


class TestStartupChecks:
    def test_all_pass_with_ports(self, tmp_path, monkeypatch):
        monkeypatch.setattr(health, "list_serial_ports", lambda: ["/dev/ttyUSB0"])

        results = run_startup_checks(_config(tmp_path, serial_port="/dev/ttyUSB0"))

        assert {r.name: r.passed for r in results} == {
            "serial_ports": True,
            "configured_port": True,
            "socket_dir": True,
            "skill_codes": True,
        }
        assert not has_critical_failures(results)

    def test_no_ports_is_not_critical(self, tmp_path, monkeypatch):
        monkeypatch.setattr(health, "list_serial_ports", lambda: [])

        results = run_startup_checks(_config(tmp_path))

        by_name = {r.name: r for r in results}
        assert not by_name["serial_ports"].passed
        assert by_name["configured_port"].passed
        assert not has_critical_failures(results)

    def test_missing_configured_port(self, tmp_path, monkeypatch):
        monkeypatch.setattr(health, "list_serial_ports", lambda: ["/dev/ttyUSB0"])

        results = run_startup_checks(_config(tmp_path, serial_port=str(tmp_path / "ttyACM7")))

        configured = next(r for r in results if r.name == "configured_port")
        assert not configured.passed
        assert "not found" in configured.detail

    def test_url_port_accepted(self, tmp_path, monkeypatch):
        monkeypatch.setattr(health, "list_serial_ports", lambda: [])

        results = run_startup_checks(_config(tmp_path, serial_port="loop://"))

        assert next(r for r in results if r.name == "configured_port").passed

    def test_missing_socket_dir_is_critical(self, tmp_path, monkeypatch):
        monkeypatch.setattr(health, "list_serial_ports", lambda: [])

        results = run_startup_checks(_config(tmp_path, socket_path=str(tmp_path / "nope" / "b.sock")))

        assert has_critical_failures(results)

    def test_unknown_skill_is_advisory(self, tmp_path, monkeypatch):
        monkeypatch.setattr(health, "list_serial_ports", lambda: ["/dev/ttyUSB0"])

        results = run_startup_checks(_config(tmp_path, done_skill2="kvtL"))

        skills = next(r for r in results if r.name == "skill_codes")
        assert not skills.passed
        assert "kvtL" in skills.detail
        assert not has_critical_failures(results)


def test_has_critical_failures_ignores_other_checks():
    results = [
        HealthCheckResult(name="serial_ports", passed=False, detail=""),
        HealthCheckResult(name="socket_dir", passed=True, detail=""),
    ]
    assert not has_critical_failures(results)
