from __future__ import annotations
import io
import logging
import os
import time
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, render_template, request
from PIL import Image

from . import config as cfgmod
from .camera import FrameSource, make_source
from .color_transform import TransformFailure
from .filters import FilterVariant
from .frame import Frame
from .gallery import GallerySaveError, save_photo
from .overlay import Bounds, PreviewSurface
from .session import PreviewPipeline

logger = logging.getLogger(__name__)


class MjpegSurface(PreviewSurface):
    """Preview surface served over HTTP: camera frame with the overlay composited on top."""

    def __init__(self, bounds: Bounds, jpeg_quality: int = 85):
        super().__init__(bounds)
        self.jpeg_quality = max(60, min(95, int(jpeg_quality)))

    def compose(self, frame: Optional[Frame]) -> Optional[Image.Image]:
        if frame is None:
            return None
        with self.transaction():
            size = self.bounds.size
            layers = self.overlays
        img = frame.to_image()
        if img.size != size:
            img = img.resize(size)
        for layer in layers:
            lay = Image.fromarray(layer.image)
            if lay.size != size:
                lay = lay.resize(size)
            img = Image.alpha_composite(img, lay)
        return img.convert("RGB")

    def jpeg_frame(self, frame: Optional[Frame]) -> Optional[bytes]:
        img = self.compose(frame)
        if img is None:
            return None
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=self.jpeg_quality)
        return buf.getvalue()


def _int_arg(name: str) -> int:
    data = request.get_json(silent=True) or request.form
    raw = data.get(name)
    if raw is None:
        raise ValueError(f"missing {name}")
    return int(raw)


def create_app(cfg: Optional[Dict[str, Any]] = None, source: Optional[FrameSource] = None,
               start: bool = True) -> Flask:
    cfg = cfg or cfgmod.load_config()
    app = Flask(__name__)

    pv = cfg["preview"]
    surface = MjpegSurface(Bounds(int(pv["surface_width"]), int(pv["surface_height"])),
                           jpeg_quality=pv.get("jpeg_quality", 85))
    pipeline = PreviewPipeline(surface, initial=FilterVariant.parse(cfg["filters"]["initial"]))
    source = source or make_source(cfg["camera"])
    source.attach(pipeline)
    # the app owns the surface; the overlay controller only holds it weakly
    app.extensions["eyesee"] = {"cfg": cfg, "surface": surface, "pipeline": pipeline, "source": source}
    fps = int(cfg["camera"].get("fps", 20))

    if start:
        pipeline.start()
        source.start()

    @app.errorhandler(ValueError)
    def bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(GallerySaveError)
    def save_failed(e):
        return jsonify({"error": str(e)}), 500

    @app.get("/healthz")
    def healthz():
        return ("ok", 200)

    @app.get("/")
    def index():
        return render_template("index.html", filter=pipeline.filter)

    @app.get("/stream.mjpg")
    def stream():
        boundary = b"--frame"

        def gen():
            while True:
                buf = surface.jpeg_frame(source.latest_frame())
                if buf is None:
                    time.sleep(0.03)
                    continue
                yield boundary + b"\r\nContent-Type: image/jpeg\r\nContent-Length: " + str(len(buf)).encode() + b"\r\n\r\n" + buf + b"\r\n"
                time.sleep(1.0 / fps)

        return Response(gen(), mimetype="multipart/x-mixed-replace; boundary=frame")

    @app.get("/api/state")
    def api_state():
        ctl = pipeline.overlay

        def overlay_state():
            layer = ctl.active
            return {"showing": layer is not None, "tag": None if layer is None else layer.tag}

        variant = pipeline.filter
        b = surface.bounds
        return jsonify({
            "filter": variant.value,
            "label": variant.label,
            "session": pipeline.state.value,
            "overlay": pipeline.dispatcher.call(overlay_state),
            "surface": {"width": b.width, "height": b.height},
            "frames_received": pipeline.frames_received,
            "frames_dropped": pipeline.worker.dropped,
            "frames_failed": pipeline.worker.failed,
        })

    def remember(variant: FilterVariant):
        filters = cfg["filters"]
        if not filters.get("remember") or filters.get("initial") == variant.value:
            return
        filters["initial"] = variant.value
        try:
            cfgmod.save_config(cfg)
        except OSError as e:
            logger.warning("could not remember filter %s: %s", variant.value, e)

    @app.post("/filter/cycle")
    def filter_cycle():
        variant = pipeline.on_filter_cycle_requested()
        remember(variant)
        return jsonify({"filter": variant.value, "label": variant.label})

    @app.post("/filter")
    def filter_select():
        data = request.get_json(silent=True) or request.form
        variant = pipeline.select_filter(FilterVariant.parse(data.get("name", "")))
        remember(variant)
        return jsonify({"filter": variant.value, "label": variant.label})

    @app.post("/surface")
    def surface_resize():
        bounds = Bounds(_int_arg("width"), _int_arg("height"))
        pipeline.on_surface_geometry_changed(bounds)
        return jsonify({"width": bounds.width, "height": bounds.height})

    @app.post("/capture")
    def capture():
        frame = source.capture_photo()
        if frame is None:
            return jsonify({"error": "no frame captured yet"}), 409
        variant = pipeline.filter
        try:
            shot = pipeline.processor.process(frame, variant) or frame
        except TransformFailure as e:
            logger.warning("capture saved unfiltered: %s", e)
            shot = frame
        path = save_photo(shot.to_image(), cfg["gallery"]["directory"])
        return jsonify({"path": path, "filter": variant.value, "tag": frame.tag}), 201

    return app


def main():
    cfg = cfgmod.load_config()
    level = os.environ.get("EYESEE_LOG_LEVEL") or cfg["logging"].get("level", "INFO")
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = create_app(cfg)
    port = int(os.environ.get("PORT", "8000"))
    host = os.environ.get("HOST", "0.0.0.0")
    try:
        app.run(host=host, port=port, threaded=True)
    finally:
        ext = app.extensions["eyesee"]
        ext["source"].stop()
        ext["pipeline"].close()


if __name__ == "__main__":
    main()
