"""Filesystem minifilter allow-list for the Dev Drive."""

BASE_FILTERS = ("MsSecFlt", "ProcMon24")

# Projected filesystem filter used by VFS for Git
GVFS_FILTERS = ("PrjFlt",)

# Container image and bind-mount filters
CONTAINER_FILTERS = ("wcifs", "bindFlt")


def allowed_filters(enable_gvfs: bool = False, enable_containers: bool = False) -> str:
    """Build the comma-separated filter allow-list.

    >>> allowed_filters(enable_gvfs=True)
    'MsSecFlt,ProcMon24,PrjFlt'
    """
    filters = list(BASE_FILTERS)
    if enable_gvfs:
        filters.extend(GVFS_FILTERS)
    if enable_containers:
        filters.extend(CONTAINER_FILTERS)
    return ",".join(filters)
