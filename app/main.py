# app/main.py - Realtime voice relay server

import logging
import time
from datetime import datetime
from typing import Dict, Optional
from fastapi import FastAPI, WebSocket, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from app import __version__
from app.config import settings

from app.managers.realtime_manager import RealtimeManager
from app.managers.cache_manager import CacheManager
from app.managers.database_manager import DatabaseManager
from app.managers.grammar_manager import GrammarChecker
from app.models.database import init_db

from app.api.websocket_handler import WebSocketHandler
from app.api.endpoints import router as api_router, get_managers as endpoints_get_managers

# Configure logging with UTF-8 encoding to handle emojis
log_handlers = [logging.StreamHandler()]
if settings.log_file:
    log_handlers.append(logging.FileHandler(settings.log_file, encoding='utf-8'))

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=log_handlers
)
logger = logging.getLogger(__name__)

if not settings.has_upstream_credentials():
    logger.warning("OPENAI_API_KEY not set - relay sessions will be refused until it is configured")

app = FastAPI(
    title="Realtime Voice Relay",
    description="Browser-to-OpenAI Realtime relay for spoken English practice",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Global managers storage
managers: Dict[str, any] = {}
server_start_time = time.time()

def get_managers_instance():
    """Get the global managers instance"""
    return managers

app.dependency_overrides[endpoints_get_managers] = get_managers_instance
app.include_router(api_router)

async def initialize_managers():
    """Initialize all managers"""
    try:
        logger.info("Initializing managers...")

        logger.info("  Initializing database manager...")
        engine = await init_db(settings.database_url)
        managers['database'] = DatabaseManager(settings.database_url, engine=engine)

        logger.info("  Initializing cache manager...")
        managers['cache'] = CacheManager(settings)

        managers['grammar'] = GrammarChecker()

        logger.info("  Initializing realtime manager...")
        managers['realtime'] = RealtimeManager(
            settings=settings,
            cache_manager=managers['cache'],
            database_manager=managers['database'],
            grammar_checker=managers['grammar']
        )

        logger.info("  Initializing websocket handler...")
        managers['websocket'] = WebSocketHandler({'realtime': managers['realtime']}, settings)

        logger.info("  All managers initialized successfully")
        return True

    except Exception as e:
        logger.error(f"  Failed to initialize managers: {e}")
        raise

# Health check endpoints
@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "uptime_seconds": time.time() - server_start_time,
        "managers": {name: name in managers for name in ("database", "cache", "grammar", "realtime", "websocket")},
        "upstream_configured": settings.has_upstream_credentials(),
        "version": __version__,
        "service": "Realtime Voice Relay"
    }

@app.get("/status")
async def server_status():
    """Get detailed server status"""
    cache_status = "unknown"
    if 'cache' in managers:
        try:
            cache_info = await managers['cache'].get_connection_status()
            cache_status = cache_info['type'] if cache_info.get('connected') else "error"
        except Exception as e:
            logger.warning(f"Cache status check failed: {e}")
            cache_status = "error"

    realtime_stats = managers['realtime'].get_connection_stats() if 'realtime' in managers else {}

    return {
        "status": "healthy",
        "uptime_seconds": time.time() - server_start_time,
        "active_sessions": realtime_stats.get('active_sessions', 0),
        "ready_sessions": realtime_stats.get('ready_sessions', 0),
        "total_sessions": realtime_stats.get('total_sessions', 0),
        "saved_conversations": realtime_stats.get('saved_conversations', 0),
        "database": "connected" if 'database' in managers else "not_connected",
        "cache": cache_status,
        "openai_configured": settings.has_upstream_credentials(),
        "realtime_model": settings.openai_realtime_model
    }

@app.get("/sessions")
async def get_active_sessions():
    """Get all live relay sessions"""
    if 'realtime' not in managers:
        return {"sessions": {}, "total": 0}

    stats = managers['realtime'].get_connection_stats()
    return {"sessions": stats['sessions'], "total": stats['active_sessions']}

# WebSocket endpoint
@app.websocket("/realtime-voice")
async def realtime_voice_endpoint(websocket: WebSocket, user_id: Optional[str] = None, topic: Optional[str] = None):
    """Relay one browser connection to the OpenAI Realtime API"""
    logger.info(f"New relay connection attempt (user={user_id}, topic={topic})")
    try:
        await managers['websocket'].handle_connection(websocket, user_id=user_id, topic=topic)
    except Exception as e:
        logger.error(f"Relay connection error (user={user_id}): {e}")

@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """Handle 404 errors with proper JSON response"""
    return JSONResponse(
        status_code=404,
        content={
            "error": "Not found",
            "detail": getattr(exc, "detail", None),
            "path": str(request.url)
        }
    )

@app.exception_handler(500)
async def internal_error_handler(request: Request, exc):
    """Handle 500 errors with proper JSON response"""
    logger.error(f"Internal server error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": str(exc)}
    )

# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    logger.info("Realtime Voice Relay starting up...")
    await initialize_managers()
    logger.info("System startup complete - ready to relay sessions")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Realtime Voice Relay shutting down...")

    if 'realtime' in managers:
        try:
            await managers['realtime'].cleanup_all_connections()
        except Exception as e:
            logger.warning(f"Error cleaning up realtime manager: {e}")

    if 'cache' in managers:
        try:
            await managers['cache'].close()
        except Exception as e:
            logger.warning(f"Error closing cache manager: {e}")

    if 'database' in managers:
        try:
            await managers['database'].close()
        except Exception as e:
            logger.warning(f"Error closing database: {e}")

    managers.clear()
    logger.info("Shutdown complete")

# Main entry point
if __name__ == "__main__":
    logger.info("=" * 60)
    logger.info("REALTIME VOICE RELAY")
    logger.info("=" * 60)
    logger.info(f"Starting server on {settings.server_host}:{settings.server_port}")
    logger.info(f"OpenAI API Key: {'Configured' if settings.has_upstream_credentials() else 'Missing'}")
    logger.info(f"API Docs: http://localhost:{settings.server_port}/docs")
    logger.info(f"WebSocket: ws://localhost:{settings.server_port}/realtime-voice?user_id=<id>&topic=<topic>")
    logger.info("=" * 60)

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
        reload=False,
        access_log=True
    )
