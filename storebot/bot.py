import os
import sys
import traceback
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from .config import StoreConfig, load_config
from .services.callbacks import CallbackData, CallbackRouter
from .services.notifications import Notifier
from .services.store import StoreService
from .services.user_state import UserStateStore
from .utils.constants import Emojis
from .utils.logger import logger

ACCESS_MESSAGES = {
    "User not found": "You are not registered yet. Use /start first.",
    "User is blocked": "Your account has been blocked.",
    "User is banned": "Your account has been banned.",
    "Temporarily blocked": "You are temporarily blocked. Please try again later.",
}


class DigitalStoreBot(commands.Bot):
    def __init__(self, config: StoreConfig, store: Optional[StoreService] = None):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.dm_messages = True
        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            help_command=None,
            activity=discord.Activity(type=discord.ActivityType.watching, name="Loading Store..."),
        )
        self.config = config
        self.store = store or StoreService.from_config(config)
        self.user_states = UserStateStore()
        self.notifier = Notifier(self, config.owner_id)
        self.callbacks = CallbackRouter(guard=self.guard_callback)
        self.commands_synced = False

    async def setup_hook(self):
        logger.info(f"{Emojis.STORE}  Initializing {self.config.bot_name}...")

        try:
            await self.store.init()
            logger.info(f"{Emojis.SUCCESS} Store data initialized.")
        except Exception as e:
            logger.critical(f"{Emojis.ERROR} Store failed to initialize: {e}")
            sys.exit(1)

        self.tree.on_error = self.on_app_command_error
        await self.load_extensions()

    async def load_extensions(self):
        """
        Loads every module in commands/ and events/ as an extension.
        """
        package = __name__.rsplit(".", 1)[0]
        for folder in ("commands", "events"):
            folder_path = os.path.join(os.path.dirname(__file__), folder)
            if not os.path.exists(folder_path):
                continue
            for filename in sorted(os.listdir(folder_path)):
                if filename.endswith(".py") and not filename.startswith("_"):
                    extension_name = f"{package}.{folder}.{filename[:-3]}"
                    try:
                        await self.load_extension(extension_name)
                        logger.info(f"Loaded extension: {extension_name}")
                    except Exception as e:
                        logger.error(f"{Emojis.ERROR} Failed to load extension {extension_name}: {e}\n{traceback.format_exc()}")

    async def guard_callback(self, interaction: discord.Interaction, data: CallbackData, owner_only: bool) -> Optional[str]:
        user_id = interaction.user.id
        limit = self.store.security.check_rate_limit(user_id)
        if not limit["allowed"]:
            return f"Too many requests. Please wait {limit['retry_after']} seconds."

        access = await self.store.users.check_user_access(user_id)
        if not access["allowed"]:
            return ACCESS_MESSAGES.get(access["reason"], access["reason"])

        if owner_only and not self.store.users.is_owner(user_id):
            self.store.security.track_activity(user_id, "unauthorized_admin_access")
            return "This action is only available to the store owner."
        return None

    async def on_ready(self):
        logger.info(f"{Emojis.ROCKET}  {self.user} is online and ready!")
        logger.info(f"ID: {self.user.id}")

        if not self.commands_synced:
            await self.sync_app_commands()
            self.commands_synced = True

        await self.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(type=discord.ActivityType.watching, name=f"{self.config.bot_name} | /start"),
        )

    async def on_error(self, event_method: str, *args, **kwargs):
        logger.error(f"Error in event {event_method}: {sys.exc_info()}")
        traceback.print_exc()

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        original = getattr(error, "original", error)
        logger.error(f"App command error: {original}")

        message = f"{Emojis.ERROR} Something went wrong. Please try again."
        try:
            if interaction.response.is_done():
                await interaction.followup.send(message, ephemeral=True)
            else:
                await interaction.response.send_message(message, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to report command error: {e}")

    async def sync_app_commands(self):
        target_guild_id = (os.getenv("DISCORD_GUILD_ID") or os.getenv("SYNC_GUILD_ID") or "").strip()
        if target_guild_id.isdigit():
            guild = discord.Object(id=int(target_guild_id))
            try:
                self.tree.copy_global_to(guild=guild)
                guild_synced = await self.tree.sync(guild=guild)
                logger.info(f"{Emojis.INFO} Synced {len(guild_synced)} commands to guild {target_guild_id}.")
            except discord.HTTPException as e:
                logger.error(f"{Emojis.ERROR} Guild command sync failed for {target_guild_id}: {e}")

        try:
            global_synced = await self.tree.sync()
            logger.info(f"{Emojis.INFO} Synced {len(global_synced)} application commands globally.")
        except discord.HTTPException as e:
            logger.error(f"{Emojis.ERROR} Global command sync failed: {e}")


def run() -> None:
    config = load_config()
    if not config.bot_token:
        logger.critical("BOT_TOKEN is not set.")
        sys.exit(1)
    if not config.owner_id:
        logger.warning("OWNER_ID is not set; admin actions will be unavailable.")

    bot = DigitalStoreBot(config)
    bot.run(config.bot_token, log_handler=None)
