"""
Base service class for Pothole Snap microservices.

Provides common functionality including:
- FastAPI application setup
- Health check endpoints
- Logging configuration
- Error handling
- Service lifecycle management
"""

import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import ServiceSettings, get_settings
from .logging import get_logger, setup_logging
from .schemas import HealthCheck, HealthStatus


class BaseService(ABC):
    """Base class for all Pothole Snap microservices."""

    def __init__(
        self, service_name: str, version: str = "1.0.0", settings: ServiceSettings = None
    ):
        self.service_name = service_name
        self.version = version
        self.settings = settings if settings is not None else get_settings()

        # Setup logging
        setup_logging(service_name, self.settings)
        self.logger = get_logger().bind(component=f"{service_name}.base")

        # Create FastAPI app
        self.app = self._create_app()

        # Service state
        self._startup_time = None
        self._is_healthy = True
        self._health_details = {}

    def _create_app(self) -> FastAPI:
        """Create and configure FastAPI application."""
        app = FastAPI(
            title=f"Pothole Snap {self.service_name.replace('_', ' ').title()} Service",
            description=f"Pothole Snap {self.service_name} service",
            version=self.version,
            docs_url="/docs",
            redoc_url="/redoc",
            openapi_url="/openapi.json",
            lifespan=self._lifespan,
        )

        # Add CORS middleware
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        # Add exception handler
        app.add_exception_handler(Exception, self._global_exception_handler)

        # Add health check endpoint
        app.add_api_route("/health", self.health_check, methods=["GET"])

        # Add service-specific routes
        self._add_routes(app)

        return app

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        """Run startup and shutdown hooks around the application lifetime."""
        await self._startup_handler()
        try:
            yield
        finally:
            await self._shutdown_handler()

    @abstractmethod
    def _add_routes(self, app: FastAPI) -> None:
        """Add service-specific routes to the FastAPI app."""
        pass

    async def _startup_handler(self) -> None:
        """Handle service startup."""
        self._startup_time = time.time()
        self.logger.info(f"{self.service_name} service starting up")

        try:
            await self._initialize_service()
            self.logger.info(f"{self.service_name} service started successfully")
        except Exception as e:
            self._is_healthy = False
            self.logger.error(
                f"Failed to start {self.service_name} service", error=str(e)
            )
            raise

    async def _shutdown_handler(self) -> None:
        """Handle service shutdown."""
        self.logger.info(f"{self.service_name} service shutting down")

        try:
            await self._cleanup_service()
            self.logger.info(f"{self.service_name} service shutdown complete")
        except Exception as e:
            self.logger.error(
                f"Error during {self.service_name} service shutdown", error=str(e)
            )

    async def _global_exception_handler(self, request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        self.logger.error(
            "Unhandled exception",
            path=str(request.url.path),
            method=request.method,
            error_type=type(exc).__name__,
            error_message=str(exc),
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "service": self.service_name,
                "timestamp": time.time(),
            },
        )

    async def health_check(self) -> HealthCheck:
        """Health check endpoint."""
        try:
            service_health = await self._check_service_health()

            status = (
                HealthStatus.HEALTHY
                if (self._is_healthy and service_health)
                else HealthStatus.UNHEALTHY
            )

            details = {
                "startup_time": self._startup_time,
                "uptime_seconds": time.time() - self._startup_time
                if self._startup_time
                else 0,
                **self._health_details,
            }

            return HealthCheck(
                service=self.service_name,
                status=status,
                version=self.version,
                details=details,
            )

        except Exception as e:
            self.logger.error("Health check failed", error=str(e))
            return HealthCheck(
                service=self.service_name,
                status=HealthStatus.UNHEALTHY,
                version=self.version,
                details={"error": str(e)},
            )

    @abstractmethod
    async def _initialize_service(self) -> None:
        """Initialize service-specific components."""
        pass

    @abstractmethod
    async def _cleanup_service(self) -> None:
        """Cleanup service-specific components."""
        pass

    async def _check_service_health(self) -> bool:
        """
        Perform service-specific health checks.

        Returns:
            True if service is healthy, False otherwise
        """
        return True

    def set_health_detail(self, key: str, value: Any) -> None:
        """Set a health check detail."""
        self._health_details[key] = value

    def set_unhealthy(self, reason: str) -> None:
        """Mark service as unhealthy."""
        self._is_healthy = False
        self.set_health_detail("unhealthy_reason", reason)
        self.logger.warning(f"Service marked as unhealthy: {reason}")

    def set_healthy(self) -> None:
        """Mark service as healthy."""
        self._is_healthy = True
        if "unhealthy_reason" in self._health_details:
            del self._health_details["unhealthy_reason"]
        self.logger.info("Service marked as healthy")

    def run(self, host: str = None, port: int = None) -> None:
        """Run the service."""
        import uvicorn

        service_config = self.settings.get_service_config()

        run_host = host or service_config.host
        run_port = port or service_config.port

        self.logger.info(
            f"Starting {self.service_name} service",
            host=run_host,
            port=run_port,
            debug=self.settings.debug,
        )

        uvicorn.run(
            self.app,
            host=run_host,
            port=run_port,
            log_config=None,  # Use our custom logging
            access_log=False,
        )
