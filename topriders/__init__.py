import os
from flask import Flask

from .cache import Cache, MemoryStore
from .config import WidgetConfig
from .errorlog import ErrorLog
from .presenter import DisplayTarget, Presenter
from .sheets import SheetSource
from .widget import TopRidersWidget


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _build_store(app: Flask):
    """PostgreSQL-backed store when DATABASE_URL is set, else in-process."""
    if not os.environ.get("DATABASE_URL"):
        return MemoryStore()
    try:
        from . import store_pg as _pg
        _pg.init_pool(minconn=_env_int("DB_POOL_MIN", 1), maxconn=_env_int("DB_POOL_MAX", 10))
        return _pg.PostgresStore()
    except Exception:  # pylint: disable=broad-except
        app.logger.exception("PostgreSQL cache store unavailable; using in-process cache")
        return MemoryStore()


def build_widget(app: Flask, config: WidgetConfig) -> TopRidersWidget:
    target = DisplayTarget(config.container_selector)
    return TopRidersWidget(
        config,
        targets={config.container_selector: target},
        source=SheetSource(timeout_ms=config.timeout_ms),
        cache=Cache(_build_store(app), expiry_ms=config.cache_expiry_ms, enabled=config.cache_enabled),
        presenter=Presenter(limits=config.limits()),
        error_log=ErrorLog(logger=app.logger),
    )


def create_app():
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=os.environ.get("SECRET_KEY") or os.urandom(24).hex(),
        TOPRIDERS_USERNAME=os.environ.get("TOPRIDERS_USERNAME", ""),
        TOPRIDERS_PASSWORD=os.environ.get("TOPRIDERS_PASSWORD", ""),
        STANDINGS_TITLE=os.environ.get("STANDINGS_TITLE", "League Standings"),
    )
    if not app.config["TOPRIDERS_USERNAME"] or not app.config["TOPRIDERS_PASSWORD"]:
        app.logger.warning("TOPRIDERS_USERNAME/TOPRIDERS_PASSWORD not set; every login will be rejected")

    widget_config = WidgetConfig.from_env()
    if not widget_config.sheet_url:
        app.logger.warning("TOPRIDERS_SHEET_URL not set; top riders will only show cached data")
    widget = build_widget(app, widget_config)
    app.extensions["topriders"] = widget

    from . import routes  # type: ignore
    app.register_blueprint(routes.bp)

    if os.environ.get("TOPRIDERS_AUTOSTART", "1").lower() not in ("0", "false"):
        app.logger.info("Starting top riders widget")
        # A missing display target is a configuration error and must stop startup
        widget.initialize()

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    create_app().run(host='0.0.0.0', port=port)
