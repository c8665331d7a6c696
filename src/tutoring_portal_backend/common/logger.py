'''
universal logger
'''
# In src/tutoring_portal_backend/common/logger.py
import logging
import sys

def setup_logger():
    """
    Configures and returns the application logger.
    """
    logger = logging.getLogger('TP-backend')
    logger.setLevel(logging.INFO)

    handler = logging.StreamHandler(sys.stdout)

    # module name first so job and webhook lines are easy to grep
    formatter = logging.Formatter(
        '%(asctime)s - %(module)s - %(levelname)s\n - %(message)s'
    )
    handler.setFormatter(formatter)

    if not logger.handlers:
        logger.addHandler(handler)

    return logger

# Create a single logger instance to be imported by other modules
log = setup_logger()
