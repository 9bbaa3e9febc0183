from scraper.config import LOG_FILE
from scraper.logger import setup_logger

setup_logger("scraper", log_file=LOG_FILE)
