from typing import TYPE_CHECKING

from discord.ext import commands

if TYPE_CHECKING:
    from ..bot import DigitalStoreBot


class BaseCog(commands.Cog):
    def __init__(self, bot: "DigitalStoreBot"):
        self.bot = bot

    @property
    def store(self):
        return self.bot.store

    @property
    def config(self):
        return self.bot.config
