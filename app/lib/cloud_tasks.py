# app/lib/cloud_tasks.py
from __future__ import annotations

import datetime
import json

from google.api_core.exceptions import NotFound
from google.cloud import tasks_v2
from google.protobuf import timestamp_pb2

from app.config import config


def create_task(*, queue: str, url: str, payload: dict, schedule_in_seconds: int = 0):
    """
    Create an HTTP task targeting the FastAPI story worker endpoint.
    Assumes OIDC auth is not used; protect via network/IAP/firewall as needed.
    """
    client = tasks_v2.CloudTasksClient()
    parent = client.queue_path(config.gcp_project, config.gcp_location, queue)

    body = json.dumps(payload).encode("utf-8")
    task = {
        "http_request": {
            "http_method": tasks_v2.HttpMethod.POST,
            "url": url,
            "headers": {"Content-Type": "application/json"},
            "body": body,
        },
        # generation + narration can take several minutes
        "dispatch_deadline": {"seconds": 900},
    }

    if schedule_in_seconds > 0:
        d = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(seconds=schedule_in_seconds)
        ts = timestamp_pb2.Timestamp()
        ts.FromDatetime(d)
        task["schedule_time"] = ts

    return client.create_task(parent=parent, task=task)

def enqueue_story_job(request_id: str, *, request_gcs: str | None = None):
    """Queue POST /api/v1/tasks/worker/story/<request_id>."""
    return create_task(
        queue=config.tasks_queue,
        url=f"{config.public_base_url}/api/v1/tasks/worker/story/{request_id}",
        payload={"request_id": request_id, "request_gcs": request_gcs},
    )

def delete_task(task_name: str) -> bool:
    """
    Delete a task by full task name:
      projects/<proj>/locations/<loc>/queues/<queue>/tasks/<id>
    Returns True if deleted, False if it didn't exist (already dispatched).
    """
    client = tasks_v2.CloudTasksClient()
    try:
        client.delete_task(name=task_name)
        return True
    except NotFound:
        return False
