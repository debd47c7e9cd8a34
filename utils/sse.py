import json

from flask import Response, stream_with_context


def format_sse(data, event: str = None, event_id=None) -> str:
    lines = []
    if event:
        lines.append(f"event: {event}")
    if event_id is not None:
        lines.append(f"id: {event_id}")
    payload = json.dumps(data, default=str)
    for line in payload.split("\n"):
        lines.append(f"data: {line}")
    # SSE events end with a blank line
    lines.append("")
    lines.append("")
    return "\n".join(lines)


def sse_response(snapshots, event: str) -> Response:
    """Stream every snapshot of a watch generator as one SSE event."""
    def _generate():
        for seq, snapshot in enumerate(snapshots, start=1):
            yield format_sse(snapshot, event=event, event_id=seq)

    return Response(
        stream_with_context(_generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
