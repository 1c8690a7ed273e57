import io
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import discord

from ..config import QUICK_DEPOSIT_AMOUNTS
from ..services.callbacks import CallbackData
from ..services.payments import AUTO_METHOD
from ..utils.base_cog import BaseCog
from ..utils.constants import DEPOSIT_STATUS_EMOJI, Colors, Emojis
from ..utils.embeds import EmbedUtils
from ..utils.formatting import format_date, format_rupiah
from ..utils.views import button_view, chunk, respond

HISTORY_LIMIT = 10

BACK_TO_MENU = ("Main Menu", "menu:main")
BACK_TO_DEPOSIT = (f"{Emojis.BACK} Deposit", "menu:deposit")


def parse_amount(text: str) -> Optional[int]:
    """Read an amount like ``50000``, ``50.000`` or ``Rp 50,000``.

    Signs and decimal parts are rejected rather than stripped.
    """
    value = re.sub(r"^rp\.?\s*", "", str(text or "").strip(), flags=re.IGNORECASE)
    if re.fullmatch(r"\d+", value):
        return int(value)
    if re.fullmatch(r"\d{1,3}(?:[.,]\d{3})+", value):
        return int(re.sub(r"[.,]", "", value))
    return None


class Deposits(BaseCog):
    STATE_STEPS = ("deposit_amount", "deposit_proof")

    def __init__(self, bot):
        super().__init__(bot)

    async def cog_load(self):
        self.bot.callbacks.register("deposit", self.handle_deposit)

    async def cog_unload(self):
        self.bot.callbacks.unregister("deposit")

    def _amount_error(self, amount: Optional[int]) -> Optional[str]:
        if amount is None:
            return "Please send a number, for example `50000`."
        if amount < self.config.min_deposit:
            return f"The minimum deposit is {format_rupiah(self.config.min_deposit)}."
        if amount > self.config.max_deposit:
            return f"The maximum deposit is {format_rupiah(self.config.max_deposit)}."
        return None

    async def show_deposit_menu(self, interaction: discord.Interaction):
        embed = EmbedUtils.panel(
            f"{Emojis.MONEY} Deposit",
            f"Choose an amount to top up.\nMinimum {format_rupiah(self.config.min_deposit)}, "
            f"maximum {format_rupiah(self.config.max_deposit)}.",
            color=Colors.SUCCESS,
        )
        amounts = [
            (format_rupiah(amount), f"deposit:amount:{amount}")
            for amount in QUICK_DEPOSIT_AMOUNTS
            if self.config.min_deposit <= amount <= self.config.max_deposit
        ]
        view = button_view(
            *chunk(amounts, 3),
            [("Custom Amount", "deposit:custom", discord.ButtonStyle.primary), (f"{Emojis.HISTORY} History", "deposit:history")],
            [BACK_TO_MENU],
        )
        await respond(interaction, embed, view)

    def build_method_picker(self, amount: int) -> Tuple[discord.Embed, discord.ui.View]:
        methods = self.store.payments.get_payment_methods()
        embed = EmbedUtils.panel(f"{Emojis.CARD} Payment Method", f"Deposit amount: **{format_rupiah(amount)}**")
        if not methods:
            embed.description += "\n\nNo payment methods are enabled right now."
        buttons = [
            (method["name"], f"deposit:method:{method['code']}:{amount}",
             discord.ButtonStyle.success if method["code"] == AUTO_METHOD else discord.ButtonStyle.secondary)
            for method in methods
        ]
        return embed, button_view(*chunk(buttons, 4), [BACK_TO_DEPOSIT])

    async def handle_deposit(self, interaction: discord.Interaction, data: CallbackData):
        user_id = interaction.user.id

        if data.action == "amount":
            amount = data.int_arg(0, 0)
            error = self._amount_error(amount)
            if error:
                await respond(interaction, EmbedUtils.error("Invalid Amount", error), button_view([BACK_TO_DEPOSIT]))
                return
            embed, view = self.build_method_picker(amount)
            await respond(interaction, embed, view)
        elif data.action == "custom":
            self.bot.user_states.set(user_id, "deposit_amount")
            await respond(
                interaction,
                EmbedUtils.info(f"{Emojis.MONEY} Custom Amount", "Send the amount you want to deposit as a direct message, for example `75000`."),
                button_view([BACK_TO_DEPOSIT]),
            )
        elif data.action == "method":
            await self.create_deposit(interaction, data.arg(0, ""), data.int_arg(1, 0))
        elif data.action == "history":
            await self.show_history(interaction)
        elif data.action in ("proof", "check", "cancel"):
            await self.handle_existing_deposit(interaction, data)
        else:
            await respond(interaction, EmbedUtils.error("Unknown Action", "That action does not exist."), button_view([BACK_TO_MENU]))

    async def create_deposit(self, interaction: discord.Interaction, method: str, amount: int):
        result = await self.store.payments.create_deposit({
            "userId": interaction.user.id,
            "amount": amount,
            "method": method,
        })
        if not result["ok"]:
            await respond(interaction, EmbedUtils.error("Deposit Failed", result["message"]), button_view([BACK_TO_DEPOSIT]))
            return

        deposit = result["deposit"]
        embed, view = self.build_deposit_instructions(deposit)
        await respond(interaction, embed, view)

    def build_deposit_instructions(self, deposit: Dict[str, Any]) -> Tuple[discord.Embed, discord.ui.View]:
        deposit_id = deposit["depositId"]
        embed = EmbedUtils.panel(f"{Emojis.MONEY} Deposit {format_rupiah(deposit['amount'])}", color=Colors.SUCCESS)
        embed.add_field(name="Deposit ID", value=f"`{deposit_id}`", inline=False)
        embed.add_field(name="Expires", value=format_date(deposit.get("expiresAt")), inline=True)
        cancel = (f"{Emojis.ERROR} Cancel", f"deposit:cancel:{deposit_id}", discord.ButtonStyle.danger)

        if deposit["method"] == AUTO_METHOD:
            embed.description = "Scan the QRIS code below with any e-wallet or banking app. Your balance is credited automatically."
            if deposit.get("qrUrl"):
                embed.set_image(url=deposit["qrUrl"])
            actions = [(f"{Emojis.PROCESSING} Check Payment", f"deposit:check:{deposit_id}", discord.ButtonStyle.primary), cancel]
            links = [("Open Payment Page", deposit["paymentUrl"])] if deposit.get("paymentUrl") else []
            return embed, button_view(actions, links)

        details = self.config.manual_payment.get(deposit["method"], {})
        lines = [f"Transfer exactly **{format_rupiah(deposit['amount'])}** via **{deposit['method']}**."]
        for key, label in (("number", "Number"), ("account_number", "Account"), ("name", "Name"), ("account_name", "Name")):
            if details.get(key):
                lines.append(f"{label}: `{details[key]}`")
        lines.append("Then press **Upload Proof** and send a screenshot of the transfer.")
        embed.description = "\n".join(lines)
        if details.get("image_url"):
            embed.set_image(url=details["image_url"])
        actions = [(f"{Emojis.UPLOAD} Upload Proof", f"deposit:proof:{deposit_id}", discord.ButtonStyle.primary), cancel]
        return embed, button_view(actions)

    async def handle_existing_deposit(self, interaction: discord.Interaction, data: CallbackData):
        user_id = interaction.user.id
        deposit_id = data.arg(0)
        deposit = await self.store.payments.get_deposit(deposit_id) if deposit_id else None
        if not deposit or deposit.get("userId") != user_id:
            await respond(interaction, EmbedUtils.error("Not Found", "Deposit not found."), button_view([BACK_TO_DEPOSIT]))
            return

        if data.action == "proof":
            if deposit.get("status") != "pending":
                await respond(interaction, EmbedUtils.error("Closed", f"This deposit is already {deposit.get('status')}."), button_view([BACK_TO_DEPOSIT]))
                return
            self.bot.user_states.set(user_id, "deposit_proof", deposit_id=deposit_id)
            await respond(
                interaction,
                EmbedUtils.info(f"{Emojis.UPLOAD} Upload Proof", "Send the transfer screenshot as an image in a direct message."),
                button_view([(f"{Emojis.ERROR} Cancel Deposit", f"deposit:cancel:{deposit_id}", discord.ButtonStyle.danger)]),
            )
        elif data.action == "check":
            result = await self.store.check_deposit(user_id, deposit_id)
            if not result["ok"]:
                await respond(interaction, EmbedUtils.error("Check Failed", result["message"]),
                              button_view([(f"{Emojis.PROCESSING} Try Again", f"deposit:check:{deposit_id}")]))
            elif result["status"] == "completed":
                balance = f"\nNew balance: **{format_rupiah(result['new_balance'])}**" if result.get("credited") else ""
                await respond(interaction, EmbedUtils.success("Payment Received", f"Your deposit is complete.{balance}"), button_view([BACK_TO_MENU]))
            elif result["status"] == "pending":
                await respond(
                    interaction,
                    EmbedUtils.info(f"{Emojis.PENDING} Waiting for Payment", "We have not received the payment yet."),
                    button_view([
                        (f"{Emojis.PROCESSING} Check Again", f"deposit:check:{deposit_id}", discord.ButtonStyle.primary),
                        (f"{Emojis.ERROR} Cancel", f"deposit:cancel:{deposit_id}", discord.ButtonStyle.danger),
                    ]),
                )
            else:
                await respond(interaction, EmbedUtils.error("Deposit Closed", f"This deposit is {result['status']}."), button_view([BACK_TO_DEPOSIT]))
        else:
            result = await self.store.cancel_deposit_for_user(user_id, deposit_id)
            self.bot.user_states.clear(user_id)
            if not result["ok"]:
                await respond(interaction, EmbedUtils.error("Cannot Cancel", result["message"]), button_view([BACK_TO_DEPOSIT]))
                return
            await respond(interaction, EmbedUtils.success("Deposit Cancelled", f"Deposit `{deposit_id}` was cancelled."), button_view([BACK_TO_MENU]))

    async def show_history(self, interaction: discord.Interaction):
        deposits = await self.store.payments.get_user_deposits(interaction.user.id)
        embed = EmbedUtils.panel(f"{Emojis.HISTORY} Deposit History")
        if not deposits:
            embed.description = "You have not made any deposits yet."
        for deposit in deposits[:HISTORY_LIMIT]:
            status = deposit.get("status") or "pending"
            embed.add_field(
                name=f"{DEPOSIT_STATUS_EMOJI.get(status, '')} {format_rupiah(deposit.get('amount'))}",
                value=f"{deposit.get('method')} | {status.title()}\n{format_date(deposit.get('createdAt'))}",
                inline=False,
            )
        await respond(interaction, embed, button_view([BACK_TO_DEPOSIT, BACK_TO_MENU]))

    async def handle_state_message(self, message: discord.Message, state: Dict[str, Any]) -> None:
        if state["step"] == "deposit_amount":
            await self._receive_custom_amount(message)
        elif state["step"] == "deposit_proof":
            await self._receive_proof(message, state["data"].get("deposit_id"))

    async def _receive_custom_amount(self, message: discord.Message):
        amount = parse_amount(message.content)
        error = self._amount_error(amount)
        if error:
            await message.channel.send(embed=EmbedUtils.error("Invalid Amount", error))
            return

        self.bot.user_states.clear(message.author.id)
        embed, view = self.build_method_picker(amount)
        await message.channel.send(embed=embed, view=view)

    async def _receive_proof(self, message: discord.Message, deposit_id: Optional[str]):
        images = [a for a in message.attachments if (a.content_type or "").startswith("image/")]
        if not images:
            await message.channel.send(embed=EmbedUtils.error("Image Required", "Please send the transfer proof as an image."))
            return

        deposit = await self.store.payments.get_deposit(deposit_id) if deposit_id else None
        if not deposit or deposit.get("userId") != message.author.id:
            self.bot.user_states.clear(message.author.id)
            await message.channel.send(embed=EmbedUtils.error("Not Found", "Deposit not found."))
            return

        image = images[0]
        try:
            data = await image.read()
        except discord.HTTPException as e:
            await message.channel.send(embed=EmbedUtils.error("Upload Failed", f"Could not download the image: {e}"))
            return

        result = await self.store.attach_deposit_proof(message.author.id, deposit_id, data, image.filename, image.url)
        self.bot.user_states.clear(message.author.id)
        if not result["ok"]:
            await message.channel.send(embed=EmbedUtils.error("Upload Failed", result["message"]))
            return

        await message.channel.send(embed=EmbedUtils.success(
            "Proof Received",
            "Thanks! Your deposit will be credited once the seller confirms the transfer.",
        ))

        embed = EmbedUtils.panel(f"{Emojis.MONEY} Deposit Awaiting Review", f"Deposit `{deposit_id}`", color=Colors.WARNING)
        embed.add_field(name="User", value=f"{message.author} (`{message.author.id}`)", inline=False)
        embed.add_field(name="Amount", value=format_rupiah(deposit.get("amount")), inline=True)
        embed.add_field(name="Method", value=str(deposit.get("method")), inline=True)
        proof = discord.File(io.BytesIO(data), filename=Path(result["deposit"]["proofPath"]).name)
        embed.set_image(url=f"attachment://{proof.filename}")
        view = button_view([
            (f"{Emojis.SUCCESS} Approve", f"admin:deposit:approve:{deposit_id}", discord.ButtonStyle.success),
            (f"{Emojis.ERROR} Reject", f"admin:deposit:reject:{deposit_id}", discord.ButtonStyle.danger),
        ])
        await self.bot.notifier.notify_owner(embed=embed, view=view, file=proof)


async def setup(bot):
    await bot.add_cog(Deposits(bot))
