"""
Flight Oracles Status API

Read-only HTTP view of the oracle server for the DApp and operators.

    GET /api                   service banner
    GET /api/health            listener / registry status
    GET /api/oracles           registered oracles and their indexes
    GET /api/rounds            recent consensus results (newest first)
    GET /api/rounds/{round_id} a single consensus result
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import FastAPI, HTTPException, Query

from .server import OracleServer


def create_app(server: OracleServer, manage_lifecycle: bool = False) -> FastAPI:
    """
    Build the FastAPI application for a server.

    Args:
        server: The oracle server to expose
        manage_lifecycle: Start/stop the server with the application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            await server.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await server.stop()

    app = FastAPI(
        title="FlightSurety Oracle Server",
        description="Off-chain oracles answering FlightSurety flight status requests",
        lifespan=lifespan,
    )

    @app.get("/api")
    def banner() -> Dict[str, str]:
        return {"message": "An API for use with your Dapp!"}

    @app.get("/api/health")
    def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "listening": server.is_listening,
            "registered_oracles": len(server.registry),
            "registration_fee": server.registry.fee,
            "active_rounds": server.active_rounds,
            "completed_rounds": len(server.history),
        }

    @app.get("/api/oracles")
    def oracles() -> List[Dict[str, Any]]:
        return [record.model_dump(mode="json") for record in server.registry.records]

    @app.get("/api/rounds")
    def rounds(limit: int = Query(20, ge=1, le=500)) -> List[Dict[str, Any]]:
        return [result.model_dump(mode="json") for result in server.history.recent(limit)]

    @app.get("/api/rounds/{round_id}")
    def round_detail(round_id: str) -> Dict[str, Any]:
        result = server.history.get(round_id)
        if result is None:
            raise HTTPException(status_code=404, detail=f"Round not found: {round_id}")
        return result.model_dump(mode="json")

    return app
