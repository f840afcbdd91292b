"""Flask JSON API for the console."""

import atexit
import logging
import secrets

from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, jsonify, request, session

from nginx_console.config import Config, load_config
from nginx_console.credentials import CredentialCache
from nginx_console.errors import ConsoleError, UnsupportedPlatformError
from nginx_console.executor import PrivilegedExecutor
from nginx_console.metrics import collect_metrics
from nginx_console.platforms import LIFECYCLE_ACTIONS, select_platform
from nginx_console.query import LogQuery, LogQueryService
from nginx_console.resolver import ConfigLogResolver
from nginx_console.runner import run_command
from nginx_console.service import ServiceController
from nginx_console.session import SessionGate, login_required
from nginx_console.tail import read_last_lines
from nginx_console.watcher import WatcherSupervisor

logger = logging.getLogger(__name__)

DEFAULT_LOG_TYPE = "access"
DEFAULT_LINES = 100


def build_components(config: Config, runner=run_command) -> dict:
    """Wire the console's collaborators for *config*."""
    timeout = config.command_timeout_seconds
    platform = select_platform(config.platform)
    cache = CredentialCache(ttl_seconds=config.credential_ttl_seconds)
    executor = PrivilegedExecutor(platform.elevation, cache, runner, timeout)
    default_conf = config.config_paths[0] if config.config_paths else "/etc/nginx/nginx.conf"
    controller = ServiceController(
        platform, executor, runner,
        service_name=config.service_name,
        nginx_binary=config.nginx_binary,
        default_config_path=default_conf,
        timeout=timeout,
    )
    resolver = ConfigLogResolver(
        config.config_paths,
        config.default_log_paths,
        build_info=controller.version,
        service_name=config.service_name,
    )
    queries = None
    if platform.query_builder is not None:
        queries = LogQueryService(platform.query_builder, runner, timeout)
    supervisor = WatcherSupervisor(
        resolver,
        config.watch_categories,
        poll_interval=config.poll_interval,
        buffer_size=config.recent_lines,
        use_fs_events=config.use_fs_events,
    )
    return {
        "config": config,
        "platform": platform,
        "cache": cache,
        "executor": executor,
        "controller": controller,
        "resolver": resolver,
        "queries": queries,
        "supervisor": supervisor,
        "gate": SessionGate(executor, cache),
    }


def start_background_jobs(components: dict) -> BackgroundScheduler:
    """Schedule watcher supervision and credential expiry sweeps."""
    config = components["config"]
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        components["supervisor"].check, "interval",
        seconds=config.supervisor_interval_seconds, id="supervise-watchers",
    )
    scheduler.add_job(
        components["cache"].purge_expired, "interval",
        seconds=60, id="purge-credentials",
    )
    scheduler.start()
    atexit.register(scheduler.shutdown, wait=False)
    return scheduler


def _parse_non_negative(raw, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= 0 else default


def create_app(config: Config | None = None, components: dict | None = None) -> Flask:
    """Flask application factory."""
    if config is None:
        config = components["config"] if components else load_config()
    if components is None:
        components = build_components(config)

    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=config.secret_key or secrets.token_hex(32),
        SESSION_COOKIE_NAME=config.session_cookie_name,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
    )
    app.config["components"] = components

    gate: SessionGate = components["gate"]
    controller: ServiceController = components["controller"]
    resolver: ConfigLogResolver = components["resolver"]
    supervisor: WatcherSupervisor = components["supervisor"]

    @app.errorhandler(ConsoleError)
    def handle_console_error(e: ConsoleError):
        if e.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.path, e.message)
        else:
            logger.info("%s %s rejected: %s", request.method, request.path, e.message)
        return jsonify(e.to_dict()), e.status_code

    # --- Session ---

    @app.route("/api/login", methods=["POST"])
    def login():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            body = {}
        gate.authenticate(session, str(body.get("password") or ""))
        return jsonify({"success": True})

    @app.route("/api/logout", methods=["POST"])
    def logout():
        gate.logout(session)
        return jsonify({"success": True})

    @app.route("/api/session")
    def check_session():
        if gate.is_authenticated(session):
            return jsonify({"authenticated": True})
        return jsonify({"authenticated": False}), 401

    # --- Service ---

    @app.route("/api/nginx/<action>", methods=["POST"])
    @login_required
    def lifecycle(action):
        if action not in LIFECYCLE_ACTIONS:
            return jsonify({"success": False, "error": f"Unknown action {action!r}"}), 404
        message = controller.perform(action, gate.credential_key(session))
        return jsonify({"success": True, "message": message})

    @app.route("/api/nginx/status")
    def status():
        return jsonify(controller.status())

    @app.route("/api/nginx/config-path")
    def config_path():
        return jsonify(controller.config_path())

    @app.route("/api/nginx/version")
    def version():
        return jsonify({"version_info": controller.version(), "success": True})

    @app.route("/api/system-metrics")
    def system_metrics():
        return jsonify(collect_metrics(config.service_name))

    # --- Logs ---

    @app.route("/api/nginx/logs")
    @login_required
    def nginx_logs():
        log_type = request.args.get("type", DEFAULT_LOG_TYPE)
        lines = _parse_non_negative(request.args.get("lines"), DEFAULT_LINES)
        path = resolver.resolve_log_file(log_type)
        return jsonify({"logs": read_last_lines(path, lines), "type": log_type, "path": path})

    @app.route("/api/nginx/logs/live")
    @login_required
    def live_logs():
        log_type = request.args.get("type", DEFAULT_LOG_TYPE)
        after = _parse_non_negative(request.args.get("after"), 0)
        return jsonify(supervisor.recent(log_type, after))

    @app.route("/api/watchers")
    @login_required
    def watchers():
        return jsonify(supervisor.status())

    @app.route("/api/systemd/logs", methods=["POST"])
    @login_required
    def systemd_logs():
        queries = components["queries"]
        if queries is None:
            raise UnsupportedPlatformError(components["platform"].name)
        query = LogQuery.from_dict(request.get_json(silent=True) or {})
        return jsonify({"logs": queries.fetch(query), "service_name": query.service_name})

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "platform": components["platform"].name})

    return app
