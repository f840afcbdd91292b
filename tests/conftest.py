import pytest

from nginx_console.config import Config
from nginx_console.runner import CommandResult
from nginx_console.web import build_components, create_app


class FakeRunner:
    """Scripted stand-in for run_command; records every call."""

    def __init__(self):
        self.calls = []
        self._responses = []
        self.default = CommandResult((), 0, "", "")

    def respond(self, prefix, returncode=0, stdout="", stderr="", exc=None):
        self._responses.append((tuple(prefix), returncode, stdout, stderr, exc))

    def __call__(self, argv, input_text=None, timeout=30.0):
        argv = tuple(argv)
        self.calls.append((argv, input_text, timeout))
        for prefix, returncode, stdout, stderr, exc in self._responses:
            if argv[: len(prefix)] == prefix:
                if exc is not None:
                    raise exc
                return CommandResult(argv, returncode, stdout, stderr)
        return CommandResult(argv, self.default.returncode, self.default.stdout,
                             self.default.stderr)

    def commands(self):
        return [argv for argv, _, _ in self.calls]


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def nginx_conf(tmp_path):
    """A minimal nginx layout under tmp_path with both log files present."""
    conf_dir = tmp_path / "nginx"
    log_dir = tmp_path / "log"
    conf_dir.mkdir()
    log_dir.mkdir()
    (log_dir / "access.log").write_text("a1\na2\n\na3\n")
    (log_dir / "error.log").write_text("e1\n")
    conf = conf_dir / "nginx.conf"
    conf.write_text(
        "worker_processes 1;\n"
        f"error_log {log_dir / 'error.log'};\n"
        "http {\n"
        f"    access_log {log_dir / 'access.log'} main;\n"
        "}\n"
    )
    return conf


@pytest.fixture
def config(nginx_conf):
    return Config(
        secret_key="test-secret",
        platform="linux",
        config_paths=(str(nginx_conf),),
        poll_interval=0.05,
        use_fs_events=False,
    )


@pytest.fixture
def components(config, runner):
    return build_components(config, runner=runner)


@pytest.fixture
def app(config, components):
    application = create_app(config, components)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logged_in(client, runner):
    """A client whose session passed the sudo probe with password 'hunter2'."""
    resp = client.post("/api/login", json={"password": "hunter2"})
    assert resp.status_code == 200
    return client
