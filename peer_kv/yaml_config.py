#!/usr/bin/env python3
"""
Simple YAML configuration loader for a peer key-value node
"""

import os
import copy
import yaml
from typing import Optional

DEFAULT_CONFIG = {
    'node': {
        'host': '0.0.0.0',
        'http_port': 8080,
    },
    'discovery': {
        'port': 8888,
        'broadcast_address': '255.255.255.255',
        'broadcast_port': None,
        'interval': 2.0,
        'buffer_size': 256,
    },
    'replication': {
        'timeout': 2.0,
    },
    'logging': {
        'level': 'INFO',
        'log_dir': None,
    },
}


class YamlConfig:
    """YAML-based configuration loader with built-in defaults"""
    
    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file
        self.config = self._load_config()
    
    def _load_config(self) -> dict:
        """Load configuration from YAML file and merge it over the defaults"""
        config = copy.deepcopy(DEFAULT_CONFIG)
        if not self.config_file:
            return config
        
        if not os.path.exists(self.config_file):
            raise FileNotFoundError(f"Configuration file {self.config_file} not found")
        
        with open(self.config_file, 'r') as f:
            loaded = yaml.safe_load(f)
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {self.config_file} is empty or invalid")
        
        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section].update(values)
            else:
                config[section] = values
        return config
    
    def get_node_config(self) -> dict:
        """Get node (HTTP) configuration"""
        return self.config.get('node', {})
    
    def get_discovery_config(self) -> dict:
        """Get discovery configuration; an unset broadcast_port means the listen port"""
        return self.config.get('discovery', {})
    
    def get_replication_config(self) -> dict:
        """Get replication configuration"""
        return self.config.get('replication', {})
    
    def get_logging_config(self) -> dict:
        """Get logging configuration"""
        return self.config.get('logging', {})


def load_config(config_file: Optional[str] = None) -> YamlConfig:
    """Load config from the given file, else from $CONFIG_FILE, else defaults."""
    return YamlConfig(config_file or os.getenv('CONFIG_FILE') or None)
