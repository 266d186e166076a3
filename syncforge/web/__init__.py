"""Flask application factory for the SyncForge state server."""

from flask import Flask, jsonify

from syncforge.statesync import MemoryTransport, Transport, TransportError


def create_app(transport: Transport | None = None) -> Flask:
    app = Flask(__name__)
    app.config["TRANSPORT"] = transport if transport is not None else MemoryTransport()

    from syncforge.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(TransportError)
    def transport_failed(error):
        return jsonify({"error": str(error)}), 502

    return app
