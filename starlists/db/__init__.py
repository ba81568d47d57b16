from .pool import init_db_pool, close_db_pool, get_connection  # noqa: F401
from .schema import init_db  # noqa: F401
from .tasks import (  # noqa: F401
    create_task,
    update_task,
    get_task,
    reset_stale_tasks,
    record_task_failures,
    list_task_failures,
)
