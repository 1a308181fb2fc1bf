"""Service kinds and their default container configuration.

Every ``type`` in a descriptor names a :class:`ServiceKind`. Each kind has a
typed :class:`ServiceDefaults` entry giving its image repository, default
version, and the ports, volumes, environment and command a container of that
kind needs to be useful in a development environment.

Roles:
    - ``runtime`` kinds (node, php, python, ...) mount the app root at
      ``/app`` and idle until the developer execs into them.
    - ``webserver`` kinds (nginx, apache) may front another service through
      the ``backend`` option, which adds an implicit dependency edge.
    - ``database`` and ``cache`` kinds keep their data in a named volume.

Default volume sources may use a ``{service}`` placeholder, filled with the
service name so two databases in one app never share a data volume.
"""

from dataclasses import dataclass, field
from enum import Enum

APP_MOUNT = "/app"
IDLE_COMMAND = ("tail", "-f", "/dev/null")


class ServiceRole(str, Enum):
    RUNTIME = "runtime"
    WEBSERVER = "webserver"
    DATABASE = "database"
    CACHE = "cache"
    TOOL = "tool"


class ServiceKind(str, Enum):
    NODE = "node"
    PHP = "php"
    PYTHON = "python"
    RUBY = "ruby"
    GO = "go"
    NGINX = "nginx"
    APACHE = "apache"
    REDIS = "redis"
    MEMCACHED = "memcached"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    POSTGRES = "postgres"
    MONGO = "mongo"
    ELASTICSEARCH = "elasticsearch"
    MAILHOG = "mailhog"

    @classmethod
    def parse(cls, value: str) -> "ServiceKind | None":
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @classmethod
    def names(cls) -> list[str]:
        return [kind.value for kind in cls]


@dataclass(frozen=True)
class ServiceDefaults:
    repository: str
    default_version: str
    role: ServiceRole
    ports: tuple[str, ...] = ()
    volumes: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    command: tuple[str, ...] | None = None
    working_dir: str | None = None
    # Port other services use to reach this one (``info`` internal_connection)
    connection_port: int | None = None


def _runtime(repository: str, version: str, port: int | None = None) -> ServiceDefaults:
    return ServiceDefaults(
        repository=repository,
        default_version=version,
        role=ServiceRole.RUNTIME,
        ports=(str(port),) if port else (),
        volumes=(f".:{APP_MOUNT}",),
        command=IDLE_COMMAND,
        working_dir=APP_MOUNT,
        connection_port=port,
    )


SERVICE_DEFAULTS: dict[ServiceKind, ServiceDefaults] = {
    ServiceKind.NODE: _runtime("node", "18", 3000),
    ServiceKind.PHP: _runtime("php", "8.2-cli", 9000),
    ServiceKind.PYTHON: _runtime("python", "3.12", 8000),
    ServiceKind.RUBY: _runtime("ruby", "3.3", 3000),
    ServiceKind.GO: _runtime("golang", "1.22", 8080),
    ServiceKind.NGINX: ServiceDefaults(
        repository="nginx",
        default_version="1.25",
        role=ServiceRole.WEBSERVER,
        ports=("80",),
        volumes=(f".:{APP_MOUNT}:ro",),
        connection_port=80,
    ),
    ServiceKind.APACHE: ServiceDefaults(
        repository="httpd",
        default_version="2.4",
        role=ServiceRole.WEBSERVER,
        ports=("80",),
        volumes=(".:/usr/local/apache2/htdocs:ro",),
        connection_port=80,
    ),
    ServiceKind.REDIS: ServiceDefaults(
        repository="redis",
        default_version="7.2",
        role=ServiceRole.CACHE,
        ports=("6379",),
        volumes=("{service}_data:/data",),
        connection_port=6379,
    ),
    ServiceKind.MEMCACHED: ServiceDefaults(
        repository="memcached",
        default_version="1.6",
        role=ServiceRole.CACHE,
        ports=("11211",),
        connection_port=11211,
    ),
    ServiceKind.MYSQL: ServiceDefaults(
        repository="mysql",
        default_version="8.0",
        role=ServiceRole.DATABASE,
        ports=("3306",),
        volumes=("{service}_data:/var/lib/mysql",),
        env={
            "MYSQL_ROOT_PASSWORD": "dockyard",
            "MYSQL_DATABASE": "dockyard",
            "MYSQL_USER": "dockyard",
            "MYSQL_PASSWORD": "dockyard",
        },
        connection_port=3306,
    ),
    ServiceKind.MARIADB: ServiceDefaults(
        repository="mariadb",
        default_version="10.11",
        role=ServiceRole.DATABASE,
        ports=("3306",),
        volumes=("{service}_data:/var/lib/mysql",),
        env={
            "MARIADB_ROOT_PASSWORD": "dockyard",
            "MARIADB_DATABASE": "dockyard",
            "MARIADB_USER": "dockyard",
            "MARIADB_PASSWORD": "dockyard",
        },
        connection_port=3306,
    ),
    ServiceKind.POSTGRES: ServiceDefaults(
        repository="postgres",
        default_version="16",
        role=ServiceRole.DATABASE,
        ports=("5432",),
        volumes=("{service}_data:/var/lib/postgresql/data",),
        env={
            "POSTGRES_DB": "dockyard",
            "POSTGRES_USER": "dockyard",
            "POSTGRES_PASSWORD": "dockyard",
        },
        connection_port=5432,
    ),
    ServiceKind.MONGO: ServiceDefaults(
        repository="mongo",
        default_version="7.0",
        role=ServiceRole.DATABASE,
        ports=("27017",),
        volumes=("{service}_data:/data/db",),
        connection_port=27017,
    ),
    ServiceKind.ELASTICSEARCH: ServiceDefaults(
        repository="elasticsearch",
        default_version="8.13.0",
        role=ServiceRole.DATABASE,
        ports=("9200",),
        volumes=("{service}_data:/usr/share/elasticsearch/data",),
        env={"discovery.type": "single-node", "xpack.security.enabled": "false"},
        connection_port=9200,
    ),
    ServiceKind.MAILHOG: ServiceDefaults(
        repository="mailhog/mailhog",
        default_version="v1.0.1",
        role=ServiceRole.TOOL,
        ports=("1025", "8025"),
        connection_port=1025,
    ),
}


def get_defaults(kind: ServiceKind) -> ServiceDefaults:
    return SERVICE_DEFAULTS[kind]
