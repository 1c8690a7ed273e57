from typing import Any, Optional

import discord

from ..utils.logger import logger


class Notifier:
    """Direct messages to store users and to the owner."""

    def __init__(self, bot: Any, owner_id: int):
        self.bot = bot
        self.owner_id = owner_id

    async def send_user(
        self,
        user_id: int,
        content: Optional[str] = None,
        embed: Optional[discord.Embed] = None,
        view: Optional[discord.ui.View] = None,
        file: Optional[discord.File] = None,
    ) -> bool:
        try:
            user = self.bot.get_user(user_id) or await self.bot.fetch_user(user_id)
            kwargs = {"content": content, "embed": embed}
            if view is not None:
                kwargs["view"] = view
            if file is not None:
                kwargs["file"] = file
            await user.send(**kwargs)
        except (discord.NotFound, discord.Forbidden, discord.HTTPException) as exc:
            logger.error(f"Failed to notify user {user_id}: {exc}")
            return False
        return True

    async def notify_owner(
        self,
        content: Optional[str] = None,
        embed: Optional[discord.Embed] = None,
        view: Optional[discord.ui.View] = None,
        file: Optional[discord.File] = None,
    ) -> bool:
        if not self.owner_id:
            logger.warning("OWNER_ID is not configured; owner notification skipped.")
            return False
        return await self.send_user(self.owner_id, content=content, embed=embed, view=view, file=file)
