import queue
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict

import requests
from fastapi import FastAPI, HTTPException

from backend.cloud_saver import CloudSaver
from backend.config import load_config
from cloud.logging_config import LogConfig, setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config()
    log_config = LogConfig(debug=config.debug, log_file=config.log_file)
    setup_logging(log_config)

    saver = CloudSaver(config, log_config=log_config)
    try:
        saver.init()
        app.state.saver = saver
        app.state.configurations = queue.Queue()
        saver.provide(app.state.configurations)
        logging.info("Cloud saver API started")
        yield
    finally:
        saver.stop()
        logging.info("Cloud saver API stopped")


app = FastAPI(title="Cloud Saver", lifespan=lifespan)


def _saver() -> CloudSaver:
    saver = getattr(app.state, "saver", None)
    if saver is None:
        raise HTTPException(status_code=503, detail="Cloud saver not started")
    return saver


@app.get("/health")
def health():
    saver = getattr(app.state, "saver", None)
    return {
        "status": "ok",
        "running": bool(saver and saver.running),
    }


@app.get("/rates")
def rates():
    """Per-service request rates from the most recent tick."""
    saver = _saver()
    return {
        "threshold": saver.traffic_threshold,
        "rates": {name: asdict(rate) for name, rate in saver.last_rates.items()},
    }


@app.get("/history")
def history():
    """Recent scale down attempts, oldest first."""
    saver = _saver()
    return {
        "dry_run": saver.dry_run,
        "history": saver.history(),
    }


@app.get("/routers")
def routers():
    """HTTP routers currently known to the proxy."""
    saver = _saver()
    try:
        found = saver.get_routers_from_api()
    except (requests.exceptions.RequestException, ValueError) as e:
        logging.error(f"Failed to fetch routers: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch routers: {e}")
    return {"routers": {name: asdict(router) for name, router in found.items()}}
