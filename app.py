import os

from flask import Flask, jsonify

from tinydb import TinyDB
from tinydb.storages import MemoryStorage

from shielded.config import ShieldedConfig, setup_logging
from shielded.scan.cache import TinyDBSnapshotStore
from shielded.scan.ledger import MemoryLedger

from scan_routes import scan_bp, init_scan_bp


def create_app(config=None, ledger=None, store=None):
    config = config or ShieldedConfig()

    errors = config.validate()
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))

    if store is None:
        if config.storage.in_memory:
            DB = TinyDB(storage=MemoryStorage)    #Memory DB
        else:
            DB = TinyDB(config.storage.db_path)   #Storage DB
        store = TinyDBSnapshotStore(DB)

    if ledger is None:
        ledger = MemoryLedger()

    app = Flask(__name__)

    init_scan_bp(ledger, store, config.scan)
    app.register_blueprint(scan_bp)

    @app.route("/")
    def main():
        return jsonify({
            "service": "shielded-scan",
            "max_slots": config.scan.max_slots,
            "aggregate_check": config.scan.aggregate_check,
        })

    return app


if __name__ == "__main__":
    config_path = os.environ.get("SHIELDED_CONFIG")
    config = ShieldedConfig.load(config_path) if config_path else ShieldedConfig()
    setup_logging(config.log)

    app = create_app(config)
    app.run(host=config.api.host, port=config.api.port)
