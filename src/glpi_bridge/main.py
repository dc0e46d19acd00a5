"""Main application entry point."""

import asyncio
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from aiohttp import web, web_runner
from pydantic import ValidationError as PydanticValidationError

from .api_clients.glpi import GlpiClient
from .auth.session_handler import close_session_provider, get_session_provider
from .config.settings import get_settings
from .core.glpi_service import GlpiService, TicketCreate, TicketScope, TicketUpdate
from .core.sync_engine import UserSyncEngine
from .database import DatabaseService, UserSearch, close_database, init_database
from .exceptions import (
    AccessDeniedError,
    AuthenticationError,
    NotFoundError,
    RemoteError,
    SyncEngineError,
    TransportError,
    ValidationError
)
from .utils.logging import get_logger, setup_logging


logger = get_logger("glpi_bridge.web")

SERVICE_KEY = web.AppKey("glpi_service", GlpiService)
SYNC_ENGINE_KEY = web.AppKey("sync_engine", UserSyncEngine)
DB_SERVICE_KEY = web.AppKey("db_service", DatabaseService)


def _error_response(status: int, error: str, detail: Any = None) -> web.Response:
    return web.json_response({"error": error, "status": status, "detail": detail}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Render domain errors as JSON with matching HTTP status codes."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except NotFoundError as e:
        return _error_response(404, "Not Found", str(e))
    except AccessDeniedError as e:
        return _error_response(403, "Forbidden", str(e))
    except (ValidationError, PydanticValidationError) as e:
        return _error_response(400, "Bad Request", str(e))
    except RemoteError as e:
        logger.warning("Remote error surfaced", path=request.path, status=e.status_code)
        return _error_response(502, "Remote Error", e.to_dict())
    except AuthenticationError as e:
        logger.error("GLPI authentication failed", path=request.path, error=str(e))
        return _error_response(502, "Authentication Error", str(e))
    except TransportError as e:
        logger.error("GLPI unreachable", path=request.path, error=str(e))
        return _error_response(504, "Transport Error", str(e))
    except SyncEngineError as e:
        return _error_response(502, "Sync Error", str(e))


def _int_param(request: web.Request, name: str, default: Optional[int] = None, required: bool = False) -> Optional[int]:
    raw = request.match_info.get(name, request.query.get(name))
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"{name} is required")
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValidationError(f"{name} must be an integer (got {raw!r})") from e


def _bool_param(request: web.Request, name: str, default: bool = False) -> bool:
    raw = request.query.get(name)
    if raw is None:
        return default
    return raw.lower() == "true"


async def _json_body(request: web.Request) -> Dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError(f"Request body is not valid JSON: {e}") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _body_int(body: Dict[str, Any], name: str, default: int) -> int:
    value = body.get(name, default)
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer (got {value!r})")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be an integer (got {value!r})") from e


class BridgeHandlers:
    """HTTP handlers; each one delegates to the service layer."""

    # Health

    async def health(self, request: web.Request) -> web.Response:
        settings = get_settings()
        return web.json_response({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.version,
            "environment": settings.environment
        })

    # GLPI pass-through and sync

    async def glpi_users(self, request: web.Request) -> web.Response:
        return web.json_response(await request.app[SERVICE_KEY].list_users())

    async def glpi_user(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, "id", required=True)
        return web.json_response(await request.app[SERVICE_KEY].get_user_by_id(user_id))

    async def glpi_tickets(self, request: web.Request) -> web.Response:
        return web.json_response(await request.app[SERVICE_KEY].list_tickets())

    async def sync_users(self, request: web.Request) -> web.Response:
        report = await request.app[SYNC_ENGINE_KEY].run(
            dry_run=_bool_param(request, "dryRun"),
            limit=_int_param(request, "limit"),
            offset=_int_param(request, "offset")
        )
        return web.json_response(report.to_dict())

    async def search(self, request: web.Request) -> web.Response:
        body = await _json_body(request)
        result = await request.app[SERVICE_KEY].search(
            request.match_info["item_type"],
            criteria=body.get("criteria") or [],
            force_display=body.get("forceDisplay"),
            limit=_body_int(body, "limit", 50),
            offset=_body_int(body, "offset", 0)
        )
        return web.json_response(result)

    # Tickets

    async def user_tickets(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, "glpiUserId", required=True)
        try:
            scope = TicketScope(request.query.get("type", TicketScope.ALL.value))
        except ValueError as e:
            raise ValidationError("type must be one of all, requested or assigned") from e
        result = await request.app[SERVICE_KEY].get_user_tickets(
            user_id,
            scope,
            limit=_int_param(request, "limit", 50),
            offset=_int_param(request, "offset", 0)
        )
        return web.json_response(result)

    async def ticket(self, request: web.Request) -> web.Response:
        result = await request.app[SERVICE_KEY].get_ticket_by_id(
            _int_param(request, "id", required=True),
            _int_param(request, "glpiUserId", required=True)
        )
        return web.json_response(result)

    async def create_ticket(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, "glpiUserId", required=True)
        ticket = TicketCreate.model_validate(await _json_body(request))
        result = await request.app[SERVICE_KEY].create_ticket_for_user(user_id, ticket)
        return web.json_response(result, status=201)

    async def update_ticket(self, request: web.Request) -> web.Response:
        ticket = TicketUpdate.model_validate(await _json_body(request))
        result = await request.app[SERVICE_KEY].update_ticket(
            _int_param(request, "id", required=True),
            _int_param(request, "glpiUserId", required=True),
            ticket
        )
        return web.json_response(result)

    async def delete_ticket(self, request: web.Request) -> web.Response:
        result = await request.app[SERVICE_KEY].delete_ticket(
            _int_param(request, "id", required=True),
            _int_param(request, "glpiUserId", required=True)
        )
        return web.json_response(result)

    async def ticket_statuses(self, request: web.Request) -> web.Response:
        return web.json_response(request.app[SERVICE_KEY].get_ticket_statuses())

    async def ticket_priorities(self, request: web.Request) -> web.Response:
        return web.json_response(request.app[SERVICE_KEY].get_ticket_priorities())

    async def ticket_search_options(self, request: web.Request) -> web.Response:
        return web.json_response(await request.app[SERVICE_KEY].get_ticket_search_options())

    # Groups

    async def user_groups(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, "glpiUserId", required=True)
        return web.json_response(await request.app[SERVICE_KEY].get_user_groups(user_id))

    async def group(self, request: web.Request) -> web.Response:
        result = await request.app[SERVICE_KEY].get_group_by_id(
            _int_param(request, "groupId", required=True),
            _int_param(request, "glpiUserId", required=True)
        )
        return web.json_response(result)

    async def group_tickets(self, request: web.Request) -> web.Response:
        result = await request.app[SERVICE_KEY].get_group_tickets(
            _int_param(request, "groupId", required=True),
            _int_param(request, "glpiUserId", required=True),
            limit=_int_param(request, "limit", 50),
            offset=_int_param(request, "offset", 0)
        )
        return web.json_response(result)

    async def group_users(self, request: web.Request) -> web.Response:
        result = await request.app[SERVICE_KEY].get_group_users(
            _int_param(request, "groupId", required=True),
            _int_param(request, "glpiUserId", required=True)
        )
        return web.json_response(result)

    # Profiles

    async def user_profiles(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, "glpiUserId", required=True)
        return web.json_response(await request.app[SERVICE_KEY].get_user_profiles(user_id))

    async def profile(self, request: web.Request) -> web.Response:
        result = await request.app[SERVICE_KEY].get_profile_by_id(
            _int_param(request, "profileId", required=True),
            _int_param(request, "glpiUserId", required=True)
        )
        return web.json_response(result)

    # Dashboard

    async def dashboard_stats(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, "glpiUserId", required=True)
        return web.json_response(await request.app[SERVICE_KEY].get_user_ticket_stats(user_id))

    async def dashboard_recent(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, "glpiUserId", required=True)
        return web.json_response(await request.app[SERVICE_KEY].get_user_recent_activity(user_id))

    async def dashboard_overview(self, request: web.Request) -> web.Response:
        user_id = _int_param(request, "glpiUserId", required=True)
        return web.json_response(await request.app[SERVICE_KEY].get_user_overview(user_id))

    # Local mirror

    async def local_users(self, request: web.Request) -> web.Response:
        criteria = UserSearch.model_validate(dict(request.query))
        result = request.app[DB_SERVICE_KEY].search_users(criteria)
        return web.json_response({
            "users": [user.to_api_dict() for user in result["users"]],
            "total": result["total"]
        })

    async def local_user(self, request: web.Request) -> web.Response:
        user = request.app[DB_SERVICE_KEY].get_user(_int_param(request, "id", required=True))
        return web.json_response(user.to_api_dict())

    async def local_user_by_glpi_id(self, request: web.Request) -> web.Response:
        user = request.app[DB_SERVICE_KEY].get_user_by_glpi_id(request.match_info["glpiId"])
        return web.json_response(user.to_api_dict())


def create_web_app(
    glpi_service: GlpiService,
    sync_engine: UserSyncEngine,
    db_service: DatabaseService
) -> web.Application:
    """Build the aiohttp application with all routes registered."""
    app = web.Application(middlewares=[error_middleware])
    app[SERVICE_KEY] = glpi_service
    app[SYNC_ENGINE_KEY] = sync_engine
    app[DB_SERVICE_KEY] = db_service

    h = BridgeHandlers()
    router = app.router

    router.add_get('/health', h.health)

    router.add_get('/glpi/users', h.glpi_users)
    router.add_get(r'/glpi/users/{id:\d+}', h.glpi_user)
    router.add_get('/glpi/tickets', h.glpi_tickets)
    router.add_post('/glpi/sync-users', h.sync_users)

    router.add_post(r'/search/{item_type:[A-Za-z][A-Za-z0-9_]*}', h.search)

    router.add_get('/tickets', h.user_tickets)
    router.add_post('/tickets', h.create_ticket)
    router.add_get('/tickets/meta/statuses', h.ticket_statuses)
    router.add_get('/tickets/meta/priorities', h.ticket_priorities)
    router.add_get('/tickets/meta/search-options', h.ticket_search_options)
    router.add_get(r'/tickets/{id:\d+}', h.ticket)
    router.add_put(r'/tickets/{id:\d+}', h.update_ticket)
    router.add_delete(r'/tickets/{id:\d+}', h.delete_ticket)

    router.add_get(r'/groups/user/{glpiUserId:\d+}', h.user_groups)
    router.add_get(r'/groups/{groupId:\d+}', h.group)
    router.add_get(r'/groups/{groupId:\d+}/tickets', h.group_tickets)
    router.add_get(r'/groups/{groupId:\d+}/users', h.group_users)

    router.add_get(r'/profiles/user/{glpiUserId:\d+}', h.user_profiles)
    router.add_get(r'/profiles/{profileId:\d+}', h.profile)

    router.add_get(r'/dashboard/user/{glpiUserId:\d+}/stats', h.dashboard_stats)
    router.add_get(r'/dashboard/user/{glpiUserId:\d+}/recent', h.dashboard_recent)
    router.add_get(r'/dashboard/user/{glpiUserId:\d+}/overview', h.dashboard_overview)

    router.add_get('/users', h.local_users)
    router.add_get(r'/users/{id:\d+}', h.local_user)
    router.add_get('/users/glpi/{glpiId}', h.local_user_by_glpi_id)

    return app


def build_sync_engine(client: GlpiClient, db_service: DatabaseService) -> UserSyncEngine:
    """Create a sync engine configured from settings."""
    sync = get_settings().sync
    return UserSyncEngine(
        client=client,
        store=db_service,
        fallback_domain=sync.fallback_email_domain,
        provenance_tag=sync.provenance_tag
    )


class GlpiBridgeApp:
    """Main GLPI bridge application."""

    def __init__(self):
        """Initialize the application."""
        self.settings = get_settings()
        self.logger = get_logger("GlpiBridge")
        self.running = False
        self.web_runner: Optional[web_runner.AppRunner] = None
        self.db_service: Optional[DatabaseService] = None
        self.client: Optional[GlpiClient] = None

    async def startup(self):
        """Application startup."""
        self.logger.info(
            "Starting GLPI bridge",
            version=self.settings.version,
            environment=self.settings.environment
        )

        db_manager = init_database(create_tables=True)
        self.db_service = DatabaseService(db_manager)

        self.client = GlpiClient.from_settings(get_session_provider())
        if not await self.client.health_check():
            self.logger.warning("GLPI is not reachable at startup", base_url=self.client.base_url)

        glpi_service = GlpiService(self.client)
        sync_engine = build_sync_engine(self.client, self.db_service)

        web_app = create_web_app(glpi_service, sync_engine, self.db_service)
        self.web_runner = web_runner.AppRunner(web_app)
        await self.web_runner.setup()

        site = web_runner.TCPSite(self.web_runner, self.settings.server.host, self.settings.server.port)
        await site.start()

        self.running = True
        self.logger.info(
            "GLPI bridge started",
            host=self.settings.server.host,
            port=self.settings.server.port
        )

    async def shutdown(self):
        """Application shutdown."""
        self.logger.info("Shutting down GLPI bridge")
        self.running = False

        if self.web_runner:
            await self.web_runner.cleanup()

        if self.client:
            await self.client.close()

        await close_session_provider()
        close_database()

        self.logger.info("GLPI bridge stopped")

    async def run(self):
        """Run the main application loop."""
        await self.startup()

        try:
            while self.running:
                await asyncio.sleep(1)
        finally:
            await self.shutdown()


def setup_signal_handlers(app: GlpiBridgeApp):
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(signum, frame):
        app.logger.info("Received signal", signal=signum)
        app.running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main():
    """Main entry point."""
    setup_logging()

    app = GlpiBridgeApp()
    setup_signal_handlers(app)

    await app.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)
