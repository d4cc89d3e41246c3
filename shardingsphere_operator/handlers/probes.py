import datetime
import kopf
from shardingsphere_operator.handlers.computenode import reconciliation_locks

# Liveness probe
@kopf.on.probe(id='now')
def get_current_timestamp(**kwargs):
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@kopf.on.probe(id='tracked')
def count_tracked_compute_nodes(**kwargs):
    return len(reconciliation_locks)
