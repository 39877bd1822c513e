import threading
from typing import Dict, Optional


class KVStore:
    """In-memory key-value store safe for concurrent request handlers."""
    
    def __init__(self):
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()
    
    def put(self, key: str, value: bytes) -> None:
        """
        Store key-value pair, overwriting any previous value.
        
        Args:
            key (str): The key to store
            value (bytes): The value to store, kept as raw bytes
        """
        with self._lock:
            self._data[key] = value
    
    def get(self, key: str) -> Optional[bytes]:
        """
        Retrieve value for key.
        
        Args:
            key (str): The key to look up
            
        Returns:
            bytes: The value for the key, or None if key not found
        """
        with self._lock:
            return self._data.get(key)
    
    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
