from reverse_proxy_auth.exc import IdentityNotFound
from reverse_proxy_auth.logging import logger
from reverse_proxy_auth.settings import DEFAULT_GROUP_SEARCH_FILTER

from .directory import DirectoryClient, join_dn
from .models import GroupDetails


class GroupResolver:
    """
    Look groups up by name.

    ``group_search_filter`` is an LDAP filter template where ``{0}`` is the
    group name; ``group_search_base`` is relative to ``root_dn``.
    """

    def __init__(
        self,
        client: DirectoryClient,
        root_dn: str | None = None,
        group_search_base: str | None = None,
        group_search_filter: str | None = None,
    ) -> None:
        self.client = client
        self.base = join_dn(group_search_base, root_dn)
        self.filter = group_search_filter or DEFAULT_GROUP_SEARCH_FILTER

    async def resolve_groups(self, group_name: str) -> set[str]:
        """
        Return the common names of the groups matching ``group_name``.

        Raises :class:`IdentityNotFound` when there are none.
        """
        groups = await self.client.search_for_single_attribute_values(
            self.base, self.filter, [group_name], "cn"
        )
        if not groups:
            logger.info("groups.not_found", group=group_name, base=self.base)
            raise IdentityNotFound(group_name)
        logger.debug("groups.resolved", group=group_name, matches=len(groups))
        return groups

    async def load_group(self, group_name: str) -> GroupDetails:
        groups = await self.resolve_groups(group_name)
        return GroupDetails(name=sorted(groups)[0])
