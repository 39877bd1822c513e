#!/usr/bin/env python3
"""
Centralized logging utilities for the peer key-value cluster
"""

import os
import logging
import logging.handlers
from datetime import datetime
from typing import Optional


def setup_logging(node_id: Optional[str] = None, log_level: Optional[str] = None,
                  log_dir: Optional[str] = None) -> logging.Logger:
    """
    Setup centralized logging for a cluster node.
    
    Args:
        node_id: Optional node ID to include in log filename
        log_level: Optional log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Optional directory for rotating log files. Console only when omitted.
    
    Returns:
        Configured logger instance
    """
    level = getattr(logging, (log_level or 'INFO').upper(), logging.INFO)
    
    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    
    # Clear any existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    
    detailed_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    
    simple_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )
    
    log_filename = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        prefix = node_id or "peer"
        log_filename = os.path.join(log_dir, f"{prefix}_{timestamp}.log")
        error_log_filename = os.path.join(log_dir, f"{prefix}_{timestamp}_error.log")
        
        # File handler for all logs (with rotation)
        file_handler = logging.handlers.RotatingFileHandler(
            log_filename,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(file_handler)
        
        # File handler for error logs only
        error_handler = logging.handlers.RotatingFileHandler(
            error_log_filename,
            maxBytes=5*1024*1024,  # 5MB
            backupCount=3
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(detailed_formatter)
        root_logger.addHandler(error_handler)
    
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(simple_formatter)
    root_logger.addHandler(console_handler)
    
    # Suppress noisy loggers
    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('requests').setLevel(logging.WARNING)
    
    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized - Level: {logging.getLevelName(level)}")
    if log_filename:
        logger.info(f"Log file: {log_filename}")
    
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module."""
    return logging.getLogger(name)


def mask_secret(secret: Optional[str]) -> str:
    """Render a secret safe for log output; only its length is shown."""
    if not secret:
        return "<empty>"
    return f"***({len(secret)} chars)"


def log_node_startup(node_id: str, host: str, http_port: int, discovery_port: int, secret: str):
    """
    Log node startup information.
    
    Args:
        node_id: Node identity token
        host: HTTP bind address
        http_port: HTTP port
        discovery_port: UDP discovery port
        secret: Cluster secret (masked before logging)
    """
    logger = get_logger(__name__)
    logger.info(f"Starting node {node_id} on {host}:{http_port}")
    logger.info(f"Discovery on udp/{discovery_port}, secret {mask_secret(secret)}")


def log_node_shutdown(node_id: str):
    logger = get_logger(__name__)
    logger.info(f"Shutting down node {node_id}")


def log_cluster_event(event_type: str, details: str, node_id: Optional[str] = None):
    """
    Log cluster-related events.
    
    Args:
        event_type: Type of event (discover, replicate, ...)
        details: Event details
        node_id: Optional node identifier
    """
    logger = get_logger(__name__)
    if node_id:
        logger.info(f"[{event_type.upper()}] Node {node_id}: {details}")
    else:
        logger.info(f"[{event_type.upper()}] {details}")


def log_error(error_type: str, error_message: str, node_id: Optional[str] = None,
              exception: Optional[BaseException] = None):
    """
    Log error events.
    
    Args:
        error_type: Type of error
        error_message: Error message
        node_id: Optional node identifier
        exception: Optional exception object
    """
    logger = get_logger(__name__)
    if node_id:
        logger.error(f"[{error_type.upper()}] Node {node_id}: {error_message}")
    else:
        logger.error(f"[{error_type.upper()}] {error_message}")
    
    if exception is not None:
        logger.error(f"Exception details for {error_type}", exc_info=exception)
