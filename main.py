from dotenv import load_dotenv
load_dotenv()

from provenance import create_app
import logging
import os

logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)

app = create_app()

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5002))
    logger.info(f"Starting citation registry API on port {port}")
    app.run(debug=os.environ.get('FLASK_DEBUG') == '1', port=port, host='0.0.0.0')
