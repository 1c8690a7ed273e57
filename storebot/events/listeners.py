import discord
from discord.ext import commands

from ..utils.base_cog import BaseCog
from ..utils.constants import Emojis
from ..utils.embeds import EmbedUtils
from ..utils.logger import logger

UNKNOWN_ACTION = "This button is no longer available. Use /start to open the menu again."


class StoreListeners(BaseCog):
    def __init__(self, bot):
        super().__init__(bot)

    @commands.Cog.listener()
    async def on_interaction(self, interaction: discord.Interaction):
        if interaction.type != discord.InteractionType.component:
            return
        custom_id = (interaction.data or {}).get("custom_id")
        if not custom_id:
            return

        try:
            result = await self.bot.callbacks.dispatch(interaction, custom_id)
        except Exception as e:
            logger.error(f"Callback {custom_id} failed for {interaction.user.id}: {e}")
            await self._reply(interaction, EmbedUtils.error("Error", "Something went wrong. Please try again."))
            return

        if result["handled"]:
            return
        if result.get("denied"):
            await self._reply(interaction, EmbedUtils.error("Access Denied", result["reason"]))
        else:
            logger.warning(f"Unhandled callback from {interaction.user.id}: {custom_id} ({result['reason']})")
            await self._reply(interaction, EmbedUtils.error("Unknown Action", UNKNOWN_ACTION))

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        if message.author.bot or message.guild is not None:
            return

        state = self.bot.user_states.get(message.author.id)
        if not state:
            return

        limit = self.store.security.check_rate_limit(message.author.id)
        if not limit["allowed"]:
            await message.channel.send(embed=EmbedUtils.error(
                "Slow Down", f"Too many requests. Please wait {limit['retry_after']} seconds."
            ))
            return

        access = await self.store.users.check_user_access(message.author.id)
        if not access["allowed"]:
            self.bot.user_states.clear(message.author.id)
            return

        cog = self._cog_for_step(state["step"])
        if cog is None:
            logger.warning(f"No handler for conversation step {state['step']}")
            self.bot.user_states.clear(message.author.id)
            return

        try:
            await cog.handle_state_message(message, state)
        except discord.HTTPException as e:
            logger.error(f"Failed to answer {message.author.id} at step {state['step']}: {e}")
        except Exception as e:
            logger.error(f"Conversation step {state['step']} failed for {message.author.id}: {e}")
            self.bot.user_states.clear(message.author.id)
            await message.channel.send(embed=EmbedUtils.error("Error", f"{Emojis.ERROR} Something went wrong. Use /start to try again."))

    def _cog_for_step(self, step: str):
        for cog in self.bot.cogs.values():
            if step in getattr(cog, "STATE_STEPS", ()):
                return cog
        return None

    @staticmethod
    async def _reply(interaction: discord.Interaction, embed: discord.Embed):
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to reply to interaction {interaction.id}: {e}")


async def setup(bot):
    await bot.add_cog(StoreListeners(bot))
