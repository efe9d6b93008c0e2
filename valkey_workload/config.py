"""
Data Store Configuration
========================

Connection and batching parameters for ClusterDataStore, loaded from the
environment and validated before any client is built.
"""

import os
from typing import Mapping, Optional

from valkey_workload.exceptions import ConfigurationError
from valkey_workload.hashslot import HASHSLOT_ENGINES

ENV_HOST = 'REDIS_HOST'
ENV_PORT = 'REDIS_PORT'
ENV_USER = 'REDIS_USER'
ENV_PASSWORD = 'REDIS_PASS'

MIN_PORT_NUMBER = 1024
MAX_PORT_NUMBER = 65535

DEFAULT_KEY_PREFIX = 'test.datastore:v1:{'
DEFAULT_KEY_SUFFIX = '}'
DEFAULT_BATCH_SIZE = 40


class DataStoreParams:
    """
    Parameters used to construct a ClusterDataStore.

    Attributes:
        host (str): Cluster seed node hostname
        port (int): Cluster seed node port
        user (str): ACL user name
        password (str): ACL password
        key_prefix (str): Prefix wrapped around logical identifiers
        key_suffix (str): Suffix wrapped around logical identifiers
        prefer_read_replicas (bool): Route reads to replicas when available
        use_tls (bool): Connect with TLS
        pool_size (int): Number of cluster clients to create
        request_timeout_ms (int): Per-request timeout, 0 keeps the client default
        max_multikey_batch_size (int): Upper bound on keys per MGET, <= 0 disables splitting
        hashslot_engine (str): Name of the CRC engine used to group keys
    """

    def __init__(self,
                 host: str = '',
                 port: int = 6379,
                 user: str = 'default',
                 password: str = '',
                 key_prefix: str = '',
                 key_suffix: str = '',
                 prefer_read_replicas: bool = True,
                 use_tls: bool = False,
                 pool_size: int = 3,
                 request_timeout_ms: int = 0,
                 max_multikey_batch_size: int = 10,
                 hashslot_engine: str = 'locked'):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.key_prefix = key_prefix
        self.key_suffix = key_suffix
        self.prefer_read_replicas = prefer_read_replicas
        self.use_tls = use_tls
        self.pool_size = pool_size
        self.request_timeout_ms = request_timeout_ms
        self.max_multikey_batch_size = max_multikey_batch_size
        self.hashslot_engine = hashslot_engine

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> 'DataStoreParams':
        """
        Build parameters from REDIS_HOST, REDIS_PORT, REDIS_USER and REDIS_PASS.

        Args:
            environ (Mapping, optional): Environment to read, defaults to os.environ
            **overrides: Any other DataStoreParams field

        Returns:
            DataStoreParams: Unvalidated parameters

        Raises:
            ConfigurationError: If a variable is unset or the port is not an integer
        """
        if environ is None:
            environ = os.environ

        values = {}
        for name in (ENV_HOST, ENV_PORT, ENV_USER, ENV_PASSWORD):
            value = environ.get(name, '')
            if not value:
                raise ConfigurationError(name, 'not set')
            values[name] = value

        try:
            port = int(values[ENV_PORT])
        except ValueError:
            raise ConfigurationError(ENV_PORT, f"must be an integer, got '{values[ENV_PORT]}'")

        return cls(host=values[ENV_HOST],
                   port=port,
                   user=values[ENV_USER],
                   password=values[ENV_PASSWORD],
                   **overrides)

    def validate(self) -> bool:
        """
        Validate every field value.

        Returns:
            bool: True if the parameters are usable

        Raises:
            ConfigurationError: Naming the first invalid field
        """
        if not self.host:
            raise ConfigurationError('host')
        if not self.user:
            raise ConfigurationError('user')
        if not self.password:
            raise ConfigurationError('password', 'not set')
        if not self.key_prefix:
            raise ConfigurationError('key_prefix')
        if not self.key_suffix:
            raise ConfigurationError('key_suffix')
        if not MIN_PORT_NUMBER < self.port <= MAX_PORT_NUMBER:
            raise ConfigurationError('port', f'out of range: {self.port}')
        if self.pool_size < 1:
            raise ConfigurationError('pool_size', f'must be positive, got {self.pool_size}')
        if self.request_timeout_ms < 0:
            raise ConfigurationError('request_timeout_ms', f'must not be negative, got {self.request_timeout_ms}')
        if self.hashslot_engine not in HASHSLOT_ENGINES:
            raise ConfigurationError('hashslot_engine', f"unknown engine '{self.hashslot_engine}'")
        return True

    def describe(self) -> str:
        """Render the connection options for logging, without the password."""
        return (f"host:{self.host}, "
                f"port:{self.port}, "
                f"user:{self.user}, "
                f"preferReadReplicas:{str(self.prefer_read_replicas).lower()}, "
                f"tls:{str(self.use_tls).lower()}, "
                f"poolSize:{self.pool_size}, "
                f"requestTimeout:{self.request_timeout_ms}, "
                f"hashslotEngine:{self.hashslot_engine}, "
                f"maxMultiKeyBatchCount:{self.max_multikey_batch_size}")
