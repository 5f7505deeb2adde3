import asyncio
import random
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from aiohttp import web
from loguru import logger

# (http_status, body) or (http_status, body, delay_seconds)
ScriptedResponse = Union[
    Tuple[int, Union[Dict[str, Any], str]],
    Tuple[int, Union[Dict[str, Any], str], float],
]


class RenderServer:
    """Stand-in for the remote render service: accepts uploads and reports job status"""

    def __init__(self, completion_time: float = 10.0, error_rate: float = 0.1):
        self.completion_time = completion_time
        self.error_rate = error_rate
        self.jobs: Dict[str, datetime] = {}
        self.uploads: List[Dict[str, Any]] = []
        self.status_queries = 0

        # Overrides for tests; the last scripted status entry keeps repeating
        self.submit_status = 200
        self.submit_response: Optional[Union[Dict[str, Any], str]] = None
        self.scripted: List[ScriptedResponse] = []

        self.app = web.Application()
        self.app.router.add_post("/render", self.handle_submit)
        self.app.router.add_get("/render/{job_id}/status", self.handle_status)
        self.app.router.add_get("/jobs/{job_id}", self.handle_status)
        self.runner: Optional[web.AppRunner] = None
        self.logger = logger

    @staticmethod
    def _respond(status: int, body: Union[Dict[str, Any], str]) -> web.Response:
        if isinstance(body, str):
            return web.Response(status=status, text=body)
        return web.json_response(body, status=status)

    async def handle_submit(self, request):
        form = await request.post()
        config = form.get("config")
        upload = {
            "config": (config.filename, config.file.read()) if config is not None else None,
            "files": [(part.filename, part.file.read()) for part in form.getall("files[]", [])],
        }
        self.uploads.append(upload)

        if self.submit_status >= 300:
            self.logger.info(f"Rejecting upload with {self.submit_status}")
            return web.Response(status=self.submit_status)

        job_id = uuid.uuid4().hex
        self.jobs[job_id] = datetime.now()
        self.logger.info(f"Queued job {job_id} with {len(upload['files'])} files")

        if self.submit_response is not None:
            return self._respond(self.submit_status, self.submit_response)
        return web.json_response({"id": job_id, "status_url": f"/render/{job_id}/status"})

    async def handle_status(self, request):
        self.status_queries += 1
        job_id = request.match_info["job_id"]

        if self.scripted:
            entry = self.scripted.pop(0) if len(self.scripted) > 1 else self.scripted[0]
            status, body, *rest = entry
            delay = rest[0] if rest else 0.0
            if delay:
                await asyncio.sleep(delay)
            self.logger.info(f"Returning scripted {status} for job {job_id}")
            return self._respond(status, body)

        start_time = self.jobs.setdefault(job_id, datetime.now())

        if random.random() < self.error_rate:
            self.logger.info("Returning failed status")
            return web.json_response({"status": "failed", "error": "render crashed"})

        elapsed = (datetime.now() - start_time).total_seconds()

        if elapsed >= self.completion_time:
            self.logger.info("Returning done status")
            return web.json_response(
                {"status": "done", "output_url": f"/renders/{job_id}.mp4"}
            )
        else:
            self.logger.info(f"Returning running status (elapsed: {elapsed:.1f}s)")
            return web.json_response({"status": "running"})

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self):
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
