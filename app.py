"""Hosted entry point for the congestion playback UI."""

import logging

from course_congestion.visualization.dash_app import app

server = app.server  # expose Flask server for gunicorn fallback

if __name__ == "__main__":
    import os
    logging.basicConfig(level=logging.INFO)
    port = int(os.environ.get("PORT", 8050))
    app.run(host="0.0.0.0", debug=False, port=port)
