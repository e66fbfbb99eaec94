"""
MJPEG video streaming for web clients.

Each camera gets its own small Flask app bound to the camera's port with a
single `/stream` route. Every viewer subscribes to the camera's
FrameBroadcaster, so all viewers share one capture subprocess.
"""

import logging
from typing import Generator

from flask import Flask, Response, jsonify



logger = logging.getLogger(__name__)

BOUNDARY = "mjpegboundary"

STREAM_HEADERS = {
    'Cache-Control': 'no-cache, no-store, must-revalidate',
    'Pragma': 'no-cache',
    'Expires': '0',
    'X-Accel-Buffering': 'no',  # Disable nginx buffering
    'Access-Control-Allow-Origin': '*',
}


def generate_mjpeg_stream(subscription) -> Generator[bytes, None, None]:
    """
    Generator for one viewer's MJPEG stream.

    Ends when the broadcaster closes (capture process exited or shutdown).
    A client disconnect closes the generator, which releases the
    subscription.

    Args:
        subscription: Viewer subscription to read frames from

    Yields:
        bytes: one multipart part per frame
    """
    try:
        for frame in subscription:
            yield format_mjpeg_part(frame)
    finally:
        subscription.close()


def format_mjpeg_part(jpeg_data: bytes) -> bytes:
    """
    Format JPEG data as one multipart part with its own headers.

    Args:
        jpeg_data: Raw JPEG bytes

    Returns:
        bytes: Boundary, part headers and frame bytes
    """
    return (
        b'\r\n--' + BOUNDARY.encode() + b'\r\n'
        b'Content-Type: image/jpeg\r\n'
        b'Content-Length: ' + str(len(jpeg_data)).encode() + b'\r\n'
        b'\r\n' + jpeg_data
    )


def create_video_response(subscription) -> Response:
    """
    Create Flask Response for one viewer.

    Args:
        subscription: Viewer subscription to stream from

    Returns:
        Response: Flask streaming response
    """
    response = Response(
        generate_mjpeg_stream(subscription),
        mimetype=f'multipart/x-mixed-replace; boundary={BOUNDARY}',
        headers=STREAM_HEADERS,
    )
    # Covers disconnects that happen before the generator first runs
    response.call_on_close(subscription.close)
    return response


def create_stream_app(handle) -> Flask:
    """
    Create the Flask app serving one camera's stream.

    Args:
        handle: StreamHandle of the camera

    Returns:
        Flask: app with the `/stream` route
    """
    app = Flask(f"camwatch.stream.{handle.camera.id}")

    @app.route('/stream')
    def stream():
        """MJPEG video stream endpoint."""
        if not handle.is_serving:
            return jsonify({
                'status': 'error',
                'message': f'Camera {handle.camera.id} stream is {handle.state.value}',
            }), 503

        subscription = handle.broadcaster.subscribe()
        logger.info(
            "Camera %d: viewer connected (%d watching)",
            handle.camera.id, handle.broadcaster.subscriber_count,
        )
        return create_video_response(subscription)

    return app
