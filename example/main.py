import asyncio
import json

from render_job_client.errors import JobFailedError, MissingOutputError
from render_job_client.models import Artifact, PollingConfig
from render_job_client.render_job_client import RenderJobClient
from render_server import RenderServer


async def status_changed(status_payload):
    print(f"Status changed to: {status_payload.raw_status}")
    print(f"Elapsed time: {status_payload.elapsed_time:.6f}s")


async def main():
    PORT = 8000
    server = RenderServer(completion_time=8.0, error_rate=0.05)
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    config = Artifact(
        content=json.dumps({"sources": ["intro.mp4"], "overlays": ["logo.png"]}),
        content_type="application/json",
    )
    files = [
        Artifact(content=b"\x00\x00\x00\x18ftypmp42", filename="intro.mp4"),
        Artifact(content=b"\x89PNG\r\n\x1a\n", filename="logo.png"),
    ]

    client = RenderJobClient(
        f"http://localhost:{PORT}",
        polling=PollingConfig(poll_interval_ms=1000, max_attempts=30),
        on_status_change=status_changed,
    )

    try:
        final_status = await client.render(config, files)
        print(f"Preview available at: {final_status.output_url}")
        print(f"Total time: {final_status.elapsed_time:.6f}s")
    except JobFailedError as e:
        print(f"Render failed: {e}")
    except MissingOutputError:
        print("Runner finished but did not provide a preview URL")
    except TimeoutError as e:
        print(f"Polling timed out: {e}")
    except Exception as e:
        print(f"Error occurred: {e}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
