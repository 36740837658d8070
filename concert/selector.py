from __future__ import annotations
from typing import Iterable, Mapping, Set, Tuple, Union

TAG_PREFIX = "concert-"

CatalogInput = Union[Mapping[str, Iterable[str]], Iterable[Tuple[str, Iterable[str]]]]


def select_domains(services: CatalogInput) -> Set[str]:
    """
    Domains demanded by the catalog: every tag of the form ``concert-<domain>``
    on any service contributes ``<domain>``. Service names and ordering are
    discarded.
    """
    pairs = services.items() if isinstance(services, Mapping) else services
    domains: Set[str] = set()
    for _service, tags in pairs:
        for tag in tags or ():
            if tag.startswith(TAG_PREFIX) and len(tag) > len(TAG_PREFIX):
                domains.add(tag[len(TAG_PREFIX):])
    return domains
