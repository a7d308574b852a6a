import logging
from typing import Optional

import redis
from flask import Flask
from flask_cors import CORS

import config
from init_app import configure_logging, init_record_store
from routes import api as api_blueprint, STORE_EXTENSION


def create_app(client: Optional[redis.Redis] = None) -> Flask:
    configure_logging()
    app = Flask(__name__)
    CORS(app)

    app.extensions[STORE_EXTENSION] = init_record_store(client)

    app.register_blueprint(api_blueprint)
    return app


if __name__ == "__main__":
    app = create_app()
    logging.getLogger("agriyield.app").info("Starting app with store at %s", config.REDIS_URL)
    app.run(debug=config.FLASK_DEBUG, host="0.0.0.0", port=config.PORT)
