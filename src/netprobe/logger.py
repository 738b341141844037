import logging

base_logger = logging.getLogger("netprobe")


def create_logger(level):
    formatter = logging.Formatter("%(asctime)s :: %(levelname)s :: %(message)s")
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    base_logger.setLevel(level)
    base_logger.addHandler(stream_handler)
    return base_logger
