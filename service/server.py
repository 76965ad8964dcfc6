from __future__ import annotations

import argparse
import base64
import binascii
from typing import Dict, List, Optional

import numpy as np
import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from anchor.locate import locate_anchor_encoded, locate_from_points
from common import __version__
from common.config import DetectionConfig, MatchingConfig, PRESETS, get_preset, load_params
from common.logging_setup import get_logger, setup_logging
from common.types import AnchorResult, Status
from paper.detect import detect_paper_encoded

log = get_logger("service")


P = load_params()
MATCHING = MatchingConfig.from_dict(P.get("matching"))
PAPER = DetectionConfig.from_dict(P.get("paper"))

app = FastAPI(title="quadloc API", version=__version__)

# (Optional) CORS for local dev tools
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class PointsRequest(BaseModel):
    ref: List[List[float]] = Field(..., description="reference points [[x, y], ...]")
    scene: List[List[float]] = Field(..., description="scene points, same order as ref")
    ref_width: float
    ref_height: float
    seed: Optional[int] = None


class LocateRequest(BaseModel):
    anchor: str = Field(..., description="base64 encoded anchor image (PNG/JPEG)")
    scene: str = Field(..., description="base64 encoded scene image (PNG/JPEG)")
    seed: Optional[int] = None


def _b64(data: str) -> Optional[bytes]:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        return None


def _rng(seed: Optional[int]) -> np.random.Generator:
    return np.random.default_rng(MATCHING.ransac_seed if seed is None else seed)


def _paper_config(preset: Optional[str], focal_length: Optional[float], cx: Optional[float], cy: Optional[float]) -> DetectionConfig:
    cfg = PAPER
    if preset is not None:
        try:
            cfg = get_preset(preset)
        except KeyError as e:
            raise HTTPException(status_code=400, detail=e.args[0])
    if focal_length is not None or cx is not None or cy is not None:
        cfg = cfg.with_camera_intrinsics(cfg.focal_length if focal_length is None else focal_length, cx, cy)
    return cfg


@app.get("/health")
def health():
    return {"status": "ok", "version": __version__}


@app.get("/version")
def version():
    return {"version": __version__, "status_codes": {s.name: int(s) for s in Status}}


@app.get("/presets")
def presets() -> Dict[str, Dict]:
    return {name: cfg.to_dict() for name, cfg in PRESETS.items()}


@app.post("/paper/detect")
async def paper_detect(
    request: Request,
    preset: Optional[str] = Query(None),
    focal_length: Optional[float] = Query(None),
    cx: Optional[float] = Query(None),
    cy: Optional[float] = Query(None),
):
    """
    Raw encoded image in the body. Always 200 with the pipeline status in the
    payload; 400 only for an unknown preset.
    """
    cfg = _paper_config(preset, focal_length, cx, cy)
    body = await request.body()
    # detection is CPU bound; keep it off the event loop
    res = await run_in_threadpool(detect_paper_encoded, body, cfg)
    return res.to_dict()


@app.post("/anchor/points")
def anchor_points(req: PointsRequest):
    res = locate_from_points(req.ref, req.scene, (req.ref_width, req.ref_height), MATCHING, rng=_rng(req.seed))
    return res.to_dict()


@app.post("/anchor/locate")
def anchor_locate(req: LocateRequest):
    anchor_bytes = _b64(req.anchor)
    scene_bytes = _b64(req.scene)
    # malformed base64 is reported like undecodable image bytes
    if anchor_bytes is None:
        return AnchorResult.failure(Status.DECODE_FAILURE).to_dict()
    if scene_bytes is None:
        return AnchorResult.failure(Status.SCENE_DECODE_FAILURE).to_dict()
    res = locate_anchor_encoded(anchor_bytes, scene_bytes, MATCHING, rng=_rng(req.seed))
    return res.to_dict()


# -------- local dev entrypoint --------
def main() -> None:
    S = P.get("service", {})
    ap = argparse.ArgumentParser(description="quadloc HTTP API")
    ap.add_argument("--host", default=S.get("host", "0.0.0.0"))
    ap.add_argument("--port", type=int, default=int(S.get("port", 8000)))
    args = ap.parse_args()

    setup_logging(P.get("logging", {}).get("level", "INFO"), force=True)
    log.info("service starting", extra={"extra": {"host": args.host, "port": args.port}})
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
