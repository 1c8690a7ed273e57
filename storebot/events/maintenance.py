import discord
from discord.ext import tasks

from ..utils.base_cog import BaseCog
from ..utils.embeds import EmbedUtils
from ..utils.formatting import format_rupiah
from ..utils.logger import logger
from ..utils.views import button_view


class Maintenance(BaseCog):
    """Background jobs: order/deposit expiry, QRIS polling, backups and file cleanup."""

    def __init__(self, bot):
        super().__init__(bot)
        self.maintenance_loop.change_interval(seconds=self.config.maintenance_interval_seconds)
        self.backup_loop.change_interval(seconds=self.config.backup_interval_seconds)

    async def cog_load(self):
        self.maintenance_loop.start()
        self.backup_loop.start()
        self.cleanup_loop.start()

    async def cog_unload(self):
        self.maintenance_loop.cancel()
        self.backup_loop.cancel()
        self.cleanup_loop.cancel()

    @tasks.loop(seconds=60)
    async def maintenance_loop(self):
        try:
            summary = await self.store.run_maintenance()
        except Exception as e:
            logger.error(f"Maintenance run failed: {e}")
            return

        if summary["expired_orders"] or summary["expired_deposits"] or summary["completed_deposits"]:
            logger.info(
                f"Maintenance: {summary['expired_orders']} orders expired "
                f"({summary['refunded_orders']} refunded), {summary['expired_deposits']} deposits expired, "
                f"{summary['completed_deposits']} QRIS deposits credited"
            )

        for credited in summary["credited"]:
            deposit = credited["deposit"]
            embed = EmbedUtils.success(
                "Deposit Confirmed",
                f"Your QRIS payment of {format_rupiah(deposit.get('amount'))} was received.\n"
                f"New balance: **{format_rupiah(credited['new_balance'])}**",
            )
            await self.bot.notifier.send_user(deposit["userId"], embed=embed, view=button_view([
                ("Main Menu", "menu:main", discord.ButtonStyle.primary),
            ]))

    @tasks.loop(seconds=3600)
    async def backup_loop(self):
        if not await self.store.db.backup():
            logger.warning("Scheduled backup did not complete")

    @tasks.loop(hours=24)
    async def cleanup_loop(self):
        removed = await self.store.cleanup_unused_files()
        if removed:
            logger.info(f"Removed {removed} old product files")

    @maintenance_loop.before_loop
    @backup_loop.before_loop
    @cleanup_loop.before_loop
    async def before_loops(self):
        await self.bot.wait_until_ready()


async def setup(bot):
    await bot.add_cog(Maintenance(bot))
