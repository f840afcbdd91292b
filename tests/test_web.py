"""Tests for the Flask JSON API."""

import logging
from types import SimpleNamespace

import pytest

from nginx_console.config import Config
from nginx_console.errors import CommandNotFoundError
from nginx_console.web import build_components, create_app, start_background_jobs


class TestLogin:
    def test_success(self, client, runner):
        resp = client.post("/api/login", json={"password": "hunter2"})
        assert resp.status_code == 200
        assert resp.get_json() == {"success": True}
        assert client.get("/api/session").get_json() == {"authenticated": True}

    def test_wrong_password(self, client, runner):
        runner.respond(["sudo", "-S", "-k"], returncode=1, stderr="Sorry, try again.")
        resp = client.post("/api/login", json={"password": "nope"})
        assert resp.status_code == 401
        assert resp.get_json() == {"success": False, "error": "Invalid sudo password"}
        assert client.get("/api/session").status_code == 401

    def test_missing_password(self, client):
        resp = client.post("/api/login", json={})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Password is required"

    @pytest.mark.parametrize("body", [["hunter2"], "hunter2", 42])
    def test_non_object_body(self, client, runner, body):
        resp = client.post("/api/login", json=body)
        assert resp.status_code == 401
        assert resp.get_json() == {"success": False, "error": "Password is required"}
        assert runner.calls == []

    def test_password_never_logged(self, logged_in, caplog):
        with caplog.at_level(logging.DEBUG):
            logged_in.post("/api/login", json={"password": "hunter2"})
            logged_in.post("/api/nginx/restart")
        assert "hunter2" not in caplog.text

    def test_logout(self, logged_in, components):
        resp = logged_in.post("/api/logout")
        assert resp.get_json() == {"success": True}
        assert logged_in.get("/api/session").status_code == 401
        assert len(components["cache"]) == 0

    def test_session_ends_when_credential_expires(self, logged_in, components):
        components["cache"].clear()
        assert logged_in.get("/api/session").status_code == 401
        assert logged_in.post("/api/nginx/start").status_code == 401


class TestLifecycle:
    def test_requires_login(self, client, runner):
        resp = client.post("/api/nginx/restart")
        assert resp.status_code == 401
        assert resp.get_json() == {"success": False, "error": "Authentication required"}
        assert runner.calls == []

    def test_restart(self, logged_in, runner):
        resp = logged_in.post("/api/nginx/restart")
        assert resp.status_code == 200
        assert resp.get_json() == {"success": True, "message": "Nginx restarted successfully"}
        argv, stdin, _ = runner.calls[-1]
        assert argv == ("sudo", "-S", "-p", "", "systemctl", "restart", "nginx")
        assert stdin == "hunter2\n"

    def test_failure(self, logged_in, runner):
        runner.respond(["sudo", "-S", "-p", "", "systemctl"], returncode=1,
                       stderr="Job for nginx.service failed.")
        resp = logged_in.post("/api/nginx/stop")
        assert resp.status_code == 500
        assert resp.get_json() == {
            "success": False,
            "error": "Failed to stop Nginx: Job for nginx.service failed.",
        }

    def test_unknown_action(self, logged_in):
        assert logged_in.post("/api/nginx/reload").status_code == 404


class TestProbes:
    def test_status(self, client, runner):
        runner.respond(["systemctl", "is-active"], stdout="active\n")
        resp = client.get("/api/nginx/status")
        assert resp.get_json() == {"status": "active", "raw_output": "active"}

    def test_version(self, client, runner):
        runner.respond(["nginx", "-V"], stderr="nginx version: nginx/1.24.0\n")
        assert client.get("/api/nginx/version").get_json() == {
            "version_info": "nginx version: nginx/1.24.0\n", "success": True,
        }

    def test_config_path_default(self, client, runner, nginx_conf):
        runner.respond(["nginx"], exc=CommandNotFoundError(["nginx"]))
        data = client.get("/api/nginx/config-path").get_json()
        assert data["found"] is False
        assert data["path"] == str(nginx_conf)

    def test_system_metrics(self, client, monkeypatch):
        monkeypatch.setattr("nginx_console.metrics.psutil.process_iter",
                            lambda attrs=None: iter([]))
        monkeypatch.setattr("nginx_console.metrics.psutil.virtual_memory",
                            lambda: SimpleNamespace(total=1024))
        resp = client.get("/api/system-metrics")
        assert resp.status_code == 200
        assert resp.get_json() == {"cpu": 0.0, "total_memory": 1024, "used_memory": 0,
                                   "tasks": 0, "worker_count": 0}

    def test_health(self, client):
        assert client.get("/health").get_json() == {"status": "ok", "platform": "linux"}


class TestLogs:
    def test_requires_login(self, client):
        assert client.get("/api/nginx/logs").status_code == 401

    def test_access_by_default(self, logged_in, nginx_conf):
        data = logged_in.get("/api/nginx/logs").get_json()
        assert data["type"] == "access"
        assert data["logs"] == ["a1", "a2", "a3"]
        assert data["path"] == str(nginx_conf.parent.parent / "log" / "access.log")

    def test_line_count(self, logged_in):
        data = logged_in.get("/api/nginx/logs?type=access&lines=2").get_json()
        assert data["logs"] == ["a2", "a3"]

    @pytest.mark.parametrize("lines", ["abc", "-5"])
    def test_invalid_line_count_uses_default(self, logged_in, lines):
        data = logged_in.get(f"/api/nginx/logs?lines={lines}").get_json()
        assert data["logs"] == ["a1", "a2", "a3"]

    def test_error_log(self, logged_in):
        data = logged_in.get("/api/nginx/logs?type=error").get_json()
        assert data["logs"] == ["e1"]

    def test_unknown_type(self, logged_in):
        resp = logged_in.get("/api/nginx/logs?type=bogus")
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False

    def test_stream_destination(self, tmp_path, runner):
        conf = tmp_path / "stderr.conf"
        conf.write_text("error_log stderr;\n")
        config = Config(secret_key="k", platform="linux", config_paths=(str(conf),),
                        use_fs_events=False)
        app = create_app(config, build_components(config, runner=runner))
        client = app.test_client()
        client.post("/api/login", json={"password": "hunter2"})

        resp = client.get("/api/nginx/logs?type=error")
        assert resp.status_code == 409
        data = resp.get_json()
        assert data["destination"] == "stream"
        assert "journalctl -u nginx" in data["error"]

    def test_live_logs(self, logged_in, components, nginx_conf):
        components["supervisor"]._buffers["access"].append("live one")
        components["supervisor"]._buffers["access"].append("live two")
        data = logged_in.get("/api/nginx/logs/live?type=access&after=1").get_json()
        assert data == {"type": "access", "logs": ["live two"], "last": 2}

    def test_watchers(self, logged_in):
        data = logged_in.get("/api/watchers").get_json()
        assert set(data) == {"access", "error"}
        assert data["access"]["running"] is False


class TestSystemdLogs:
    def test_query(self, logged_in, runner):
        runner.respond(["journalctl"], stdout="Oct 19 nginx[1]: started\n")
        resp = logged_in.post("/api/systemd/logs", json={
            "serviceName": "nginx", "numLines": 20, "noPager": True,
        })
        assert resp.status_code == 200
        assert resp.get_json() == {"logs": "Oct 19 nginx[1]: started\n", "service_name": "nginx"}
        assert runner.commands()[-1] == ("journalctl", "-u", "nginx", "--no-pager", "-n", "20")

    def test_missing_service_name(self, logged_in):
        resp = logged_in.post("/api/systemd/logs", json={})
        assert resp.status_code == 400

    def test_tool_failure(self, logged_in, runner):
        runner.respond(["journalctl"], returncode=1, stderr="No journal files were found.\n")
        resp = logged_in.post("/api/systemd/logs", json={"service_name": "nginx"})
        assert resp.status_code == 500
        assert resp.get_json()["error"] == "journalctl error: No journal files were found."

    def test_unsupported_platform(self, tmp_path, runner):
        config = Config(secret_key="k", platform="plan9", config_paths=(),
                        use_fs_events=False)
        app = create_app(config, build_components(config, runner=runner))
        client = app.test_client()
        # no elevation on this platform, so login itself is refused
        assert client.post("/api/login", json={"password": "x"}).status_code == 501


class TestBackgroundJobs:
    def test_schedules_supervision_and_purge(self, components, monkeypatch):
        registered = []
        monkeypatch.setattr("nginx_console.web.atexit.register",
                            lambda fn, **kw: registered.append(fn))
        scheduler = start_background_jobs(components)
        try:
            ids = {job.id for job in scheduler.get_jobs()}
            assert ids == {"supervise-watchers", "purge-credentials"}
            assert registered == [scheduler.shutdown]
        finally:
            scheduler.shutdown(wait=False)
