import sys
import socket
import logging
import threading

from config import ConfigurationError, load_config
from flask_app import create_app, run_flask
from network import resolve_host_address
from queue_controller import QueueController
from tui_app import JukeboxConsole

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main():
    try:
        config = load_config()
    except ConfigurationError as e:
        logger.error(f"ERROR: Could not load config.json: {e}")
        logger.error('Ensure the file exists and contains: { "hostIp": "YOUR_IP_HERE" }')
        sys.exit(1)

    host_address = resolve_host_address(config.host_ip)
    controller = QueueController(host_address)
    flask_app = create_app(config, controller)

    resolved_note = f" ({host_address})" if host_address != config.host_ip else ""
    logger.info(f"Jukebox API running at: http://localhost:{config.port}")
    logger.info(f"Host (player) locked to: {config.host_ip}{resolved_note}")
    logger.info(f"LAN access: http://{socket.gethostname()}.local:{config.port}")

    if config.headless:
        run_flask(flask_app, config)
        return

    flask_thread = threading.Thread(target=run_flask, args=(flask_app, config), daemon=True)
    flask_thread.start()

    JukeboxConsole(controller, enrichment_timeout=config.enrichment_timeout).run()


if __name__ == "__main__":
    main()
