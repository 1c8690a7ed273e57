from pathlib import Path
from typing import Any, Dict

import discord
from discord import app_commands

from ..config import PRODUCT_CATEGORIES
from ..services.callbacks import CallbackData
from ..services.products import DEFAULT_STOCK
from ..utils.base_cog import BaseCog
from ..utils.constants import DEPOSIT_STATUS_EMOJI, ORDER_STATUS_LABELS, Colors, Emojis
from ..utils.embeds import EmbedUtils
from ..utils.formatting import format_date, format_rupiah, format_size, truncate
from ..utils.logger import logger
from ..utils.pagination import paginate
from ..utils.validator import Validator
from ..utils.views import button_view, chunk, page_row, respond
from .deposits import parse_amount

BACK_TO_PANEL = (f"{Emojis.BACK} Admin Panel", "admin:panel")
USER_LIST_LIMIT = 15


class Admin(BaseCog):
    STATE_STEPS = (
        "product_name",
        "product_description",
        "product_price",
        "product_category",
        "product_stock",
        "product_files",
        "reject_order",
        "reject_deposit",
    )

    def __init__(self, bot):
        super().__init__(bot)

    async def cog_load(self):
        self.bot.callbacks.register("admin", self.handle_admin, owner_only=True)

    async def cog_unload(self):
        self.bot.callbacks.unregister("admin")

    @app_commands.command(name="done", description="Finish uploading files for a new product")
    async def done(self, interaction: discord.Interaction):
        if not self.store.users.is_owner(interaction.user.id):
            await interaction.response.send_message("Owner only.", ephemeral=True)
            return

        state = self.bot.user_states.get(interaction.user.id)
        if not state or state["step"] != "product_files":
            await interaction.response.send_message(
                embed=EmbedUtils.error("Nothing to Finish", "There is no product upload in progress."),
                ephemeral=True,
            )
            return

        self.bot.user_states.clear(interaction.user.id)
        product = await self.store.products.get_product(state["data"].get("product_id"))
        if not product:
            await interaction.response.send_message(embed=EmbedUtils.error("Not Found", "Product not found."), ephemeral=True)
            return

        metadata = product.get("metadata") or {}
        embed = EmbedUtils.success("Product Published", f"**{product['name']}** is now listed in the store.")
        embed.add_field(name="Price", value=format_rupiah(product.get("price")), inline=True)
        embed.add_field(name="Stock", value=str(product.get("stock")), inline=True)
        embed.add_field(name="Files", value=f"{metadata.get('fileCount', 0)} ({format_size(metadata.get('fileSize') or 0)})", inline=True)
        if not metadata.get("fileCount"):
            embed.add_field(name=f"{Emojis.WARNING} No files", value="Buyers will have nothing to download yet.", inline=False)
        await interaction.response.send_message(embed=embed, view=button_view([BACK_TO_PANEL]), ephemeral=True)

    async def handle_admin(self, interaction: discord.Interaction, data: CallbackData):
        action = data.action
        if action == "panel":
            await self.show_panel(interaction)
        elif action == "add_product":
            self.bot.user_states.set(interaction.user.id, "product_name")
            await respond(
                interaction,
                EmbedUtils.info(f"{Emojis.PACKAGE} New Product (1/6)", "Send the product **name** (3-100 characters) as a direct message."),
                button_view([BACK_TO_PANEL]),
            )
        elif action == "products":
            await self.show_products(interaction, data.int_arg(0, 1))
        elif action == "orders":
            await self.show_orders(interaction, data.int_arg(0, 1))
        elif action == "deposits":
            await self.show_deposits(interaction, data.int_arg(0, 1))
        elif action == "users":
            await self.show_users(interaction)
        elif action == "stats":
            await self.show_stats(interaction)
        elif action == "order":
            await self.handle_order_action(interaction, data.arg(0), data.arg(1))
        elif action == "deposit":
            await self.handle_deposit_action(interaction, data.arg(0), data.arg(1))
        else:
            await respond(interaction, EmbedUtils.error("Unknown Action", "That action does not exist."), button_view([BACK_TO_PANEL]))

    async def show_panel(self, interaction: discord.Interaction):
        self.bot.user_states.clear(interaction.user.id)
        stats = await self.store.db.get_stats()
        pending_deposits = await self.store.payments.get_all_deposits({"status": "pending"})
        open_orders = await self.store.orders.get_all_orders({"status": "processing"})

        embed = EmbedUtils.panel(f"{Emojis.ADMIN} Admin Panel", color=Colors.SECONDARY)
        embed.add_field(name="Users", value=str(stats["totalUsers"]), inline=True)
        embed.add_field(name="Products", value=str(stats["totalProducts"]), inline=True)
        embed.add_field(name="Revenue", value=format_rupiah(stats["totalRevenue"]), inline=True)
        embed.add_field(name="Orders to Review", value=str(len(open_orders) + stats["pendingOrders"]), inline=True)
        embed.add_field(name="Deposits to Review", value=str(len(pending_deposits)), inline=True)

        view = button_view(
            [
                (f"{Emojis.PACKAGE} Add Product", "admin:add_product", discord.ButtonStyle.success),
                (f"{Emojis.STORE} Products", "admin:products"),
                (f"{Emojis.STATS} Stats", "admin:stats"),
            ],
            [
                (f"{Emojis.PENDING} Orders", "admin:orders", discord.ButtonStyle.primary),
                (f"{Emojis.MONEY} Deposits", "admin:deposits", discord.ButtonStyle.primary),
                (f"{Emojis.USER} Users", "admin:users"),
            ],
            [("Main Menu", "menu:main")],
        )
        await respond(interaction, embed, view)

    async def show_products(self, interaction: discord.Interaction, page: int):
        products = await self.store.products.get_all_products({"sortBy": "newest"})
        items, page, total_pages = paginate(products, page, self.config.items_per_page)
        embed = EmbedUtils.panel(f"{Emojis.STORE} Products", f"Page {page}/{total_pages} - {len(products)} products")
        for product in items:
            embed.add_field(
                name=truncate(product.get("name"), 250),
                value=(
                    f"`{product['productId']}` | {product.get('status')}\n"
                    f"{format_rupiah(product.get('price'))} | stock {product.get('stock')} | "
                    f"sold {product.get('totalSales') or 0} | files {(product.get('metadata') or {}).get('fileCount', 0)}"
                ),
                inline=False,
            )
        view = button_view(page_row("admin:products", page, total_pages), [BACK_TO_PANEL])
        await respond(interaction, embed, view)

    async def show_orders(self, interaction: discord.Interaction, page: int):
        orders = [
            o for o in await self.store.orders.get_all_orders()
            if o.get("status") in ("pending", "processing")
        ]
        items, page, total_pages = paginate(orders, page, self.config.orders_per_page)
        embed = EmbedUtils.panel(f"{Emojis.PENDING} Orders to Review", f"Page {page}/{total_pages} - {len(orders)} open orders")
        if not orders:
            embed.description = "No orders are waiting for review."
        for order in items:
            embed.add_field(
                name=order["orderId"],
                value=(
                    f"{truncate(order.get('productName'), 80)} | {format_rupiah(order.get('amount'))}\n"
                    f"User `{order.get('userId')}` | {ORDER_STATUS_LABELS.get(order.get('status'), order.get('status'))}"
                ),
                inline=False,
            )
        buttons = [(o["orderId"], f"admin:order:detail:{o['orderId']}") for o in items]
        view = button_view(*chunk(buttons, 3), page_row("admin:orders", page, total_pages), [BACK_TO_PANEL])
        await respond(interaction, embed, view)

    async def show_deposits(self, interaction: discord.Interaction, page: int):
        deposits = await self.store.payments.get_all_deposits({"status": "pending"})
        items, page, total_pages = paginate(deposits, page, self.config.orders_per_page)
        embed = EmbedUtils.panel(f"{Emojis.MONEY} Pending Deposits", f"Page {page}/{total_pages} - {len(deposits)} pending")
        if not deposits:
            embed.description = "No deposits are waiting for review."
        for deposit in items:
            proof = "proof uploaded" if deposit.get("proofPath") or deposit.get("proofUrl") else "no proof yet"
            embed.add_field(
                name=f"{format_rupiah(deposit.get('amount'))} via {deposit.get('method')}",
                value=f"`{deposit['depositId']}`\nUser `{deposit.get('userId')}` | {proof}",
                inline=False,
            )
        buttons = [(f"{format_rupiah(d.get('amount'))} #{i}", f"admin:deposit:detail:{d['depositId']}") for i, d in enumerate(items, start=1)]
        view = button_view(*chunk(buttons, 3), page_row("admin:deposits", page, total_pages), [BACK_TO_PANEL])
        await respond(interaction, embed, view)

    async def show_users(self, interaction: discord.Interaction):
        users = sorted(await self.store.users.get_all_users(), key=lambda u: u.get("joinedAt") or "", reverse=True)
        total_balance = sum(u.get("balance") or 0 for u in users)
        embed = EmbedUtils.panel(f"{Emojis.USER} Users", f"{len(users)} users | {format_rupiah(total_balance)} held in balances")
        lines = []
        for user in users[:USER_LIST_LIMIT]:
            flags = " (blocked)" if user.get("isBlocked") else ""
            lines.append(
                f"`{user['userId']}` {truncate(user.get('username'), 32)}{flags} - "
                f"{format_rupiah(user.get('balance'))}, {user.get('totalOrders') or 0} orders"
            )
        if lines:
            embed.add_field(name="Newest", value="\n".join(lines)[:1024], inline=False)
        await respond(interaction, embed, button_view([BACK_TO_PANEL]))

    async def show_stats(self, interaction: discord.Interaction):
        stats = await self.store.db.get_stats()
        order_stats = await self.store.orders.get_order_stats()
        payment_stats = await self.store.payments.get_payment_stats()
        storage = await self.store.files.get_storage_stats()

        embed = EmbedUtils.panel(f"{Emojis.STATS} Store Statistics", color=Colors.INFO)
        embed.add_field(name="Users", value=str(stats["totalUsers"]), inline=True)
        embed.add_field(name="Products", value=str(stats["totalProducts"]), inline=True)
        embed.add_field(name="Payments", value=str(stats["totalPayments"]), inline=True)
        embed.add_field(
            name="Orders",
            value=(
                f"Total {order_stats['total']}\nPending {order_stats['pending']}\n"
                f"Processing {order_stats['processing']}\nCompleted {order_stats['completed']}\n"
                f"Cancelled {order_stats['cancelled']}"
            ),
            inline=True,
        )
        embed.add_field(
            name="Revenue",
            value=f"{format_rupiah(order_stats['totalRevenue'])}\nAvg {format_rupiah(order_stats['averageOrderValue'])}",
            inline=True,
        )
        embed.add_field(
            name="Deposits",
            value=(
                f"Total {payment_stats['totalDeposits']}\nPending {payment_stats['pending']}\n"
                f"Completed {payment_stats['completed']} ({format_rupiah(payment_stats['totalAmount'])})"
            ),
            inline=True,
        )
        embed.add_field(name="Storage", value=f"{storage['totalFiles']} files, {storage['totalSizeFormatted']}", inline=False)
        embed.set_footer(text=f"Updated {format_date(stats['lastUpdate'])}")
        await respond(interaction, embed, button_view([BACK_TO_PANEL]))

    async def show_order_detail(self, interaction: discord.Interaction, order: Dict[str, Any]):
        order_id = order["orderId"]
        embed = EmbedUtils.panel(f"{Emojis.PACKAGE} Order {order_id}")
        embed.add_field(name="Product", value=order.get("productName") or "-", inline=False)
        embed.add_field(name="User", value=f"`{order.get('userId')}`", inline=True)
        embed.add_field(name="Amount", value=format_rupiah(order.get("amount")), inline=True)
        embed.add_field(name="Status", value=ORDER_STATUS_LABELS.get(order.get("status"), str(order.get("status"))), inline=True)
        embed.add_field(name="Payment", value=str(order.get("paymentStatus")), inline=True)
        embed.add_field(name="Created", value=format_date(order.get("createdAt")), inline=True)
        if order.get("notes"):
            embed.add_field(name="Notes", value=truncate(order["notes"], 1000), inline=False)

        actions = []
        if order.get("status") in ("pending", "processing"):
            actions = [
                (f"{Emojis.SUCCESS} Approve", f"admin:order:approve:{order_id}", discord.ButtonStyle.success),
                (f"{Emojis.ERROR} Reject", f"admin:order:reject:{order_id}", discord.ButtonStyle.danger),
            ]
        await respond(interaction, embed, button_view(actions, [(f"{Emojis.BACK} Orders", "admin:orders"), BACK_TO_PANEL]))

    async def handle_order_action(self, interaction: discord.Interaction, sub_action: str, order_id: str):
        order = await self.store.orders.get_order(order_id) if order_id else None
        if not order:
            await respond(interaction, EmbedUtils.error("Not Found", "Order not found."), button_view([BACK_TO_PANEL]))
            return

        if sub_action == "detail":
            await self.show_order_detail(interaction, order)
        elif sub_action == "approve":
            result = await self.store.approve_order(order_id, interaction.user.id)
            if not result["ok"]:
                await respond(interaction, EmbedUtils.error("Approve Failed", result["message"]), button_view([BACK_TO_PANEL]))
                return
            await respond(interaction, EmbedUtils.success("Order Approved", f"Order `{order_id}` is completed and delivered."),
                          button_view([(f"{Emojis.BACK} Orders", "admin:orders"), BACK_TO_PANEL]))
            embed = EmbedUtils.success(
                "Order Completed",
                f"Your order `{order_id}` for **{order.get('productName')}** was approved. Your files are ready.",
            )
            await self.bot.notifier.send_user(order["userId"], embed=embed, view=button_view([
                (f"{Emojis.DOWNLOAD} Download", f"order:download:{order_id}", discord.ButtonStyle.success),
            ]))
        elif sub_action == "reject":
            if order.get("status") not in ("pending", "processing"):
                await respond(interaction, EmbedUtils.error("Cannot Reject", f"Order is already {order.get('status')}."), button_view([BACK_TO_PANEL]))
                return
            self.bot.user_states.set(interaction.user.id, "reject_order", order_id=order_id)
            await respond(
                interaction,
                EmbedUtils.info(f"{Emojis.ERROR} Reject Order", f"Send the reason for rejecting `{order_id}` as a direct message."),
                button_view([(f"{Emojis.BACK} Back", f"admin:order:detail:{order_id}")]),
            )
        else:
            await respond(interaction, EmbedUtils.error("Unknown Action", "That action does not exist."), button_view([BACK_TO_PANEL]))

    async def handle_deposit_action(self, interaction: discord.Interaction, sub_action: str, deposit_id: str):
        deposit = await self.store.payments.get_deposit(deposit_id) if deposit_id else None
        if not deposit:
            await respond(interaction, EmbedUtils.error("Not Found", "Deposit not found."), button_view([BACK_TO_PANEL]))
            return

        if sub_action == "detail":
            status = deposit.get("status") or "pending"
            embed = EmbedUtils.panel(f"{Emojis.MONEY} Deposit {format_rupiah(deposit.get('amount'))}", f"`{deposit_id}`")
            embed.add_field(name="User", value=f"`{deposit.get('userId')}`", inline=True)
            embed.add_field(name="Method", value=str(deposit.get("method")), inline=True)
            embed.add_field(name="Status", value=f"{DEPOSIT_STATUS_EMOJI.get(status, '')} {status.title()}", inline=True)
            embed.add_field(name="Created", value=format_date(deposit.get("createdAt")), inline=True)
            embed.add_field(name="Expires", value=format_date(deposit.get("expiresAt")), inline=True)
            proof = None
            proof_path = Path(deposit["proofPath"]) if deposit.get("proofPath") else None
            if proof_path and proof_path.is_file():
                proof = discord.File(proof_path, filename=proof_path.name)
                embed.set_image(url=f"attachment://{proof_path.name}")
            elif deposit.get("proofPath") or deposit.get("proofUrl"):
                embed.add_field(name="Proof", value="The stored proof image is missing.", inline=False)
            actions = []
            if status == "pending":
                actions = [
                    (f"{Emojis.SUCCESS} Approve", f"admin:deposit:approve:{deposit_id}", discord.ButtonStyle.success),
                    (f"{Emojis.ERROR} Reject", f"admin:deposit:reject:{deposit_id}", discord.ButtonStyle.danger),
                ]
            await respond(interaction, embed, button_view(actions, [(f"{Emojis.BACK} Deposits", "admin:deposits"), BACK_TO_PANEL]),
                          file=proof)
        elif sub_action == "approve":
            result = await self.store.approve_deposit(deposit_id, interaction.user.id)
            if not result["ok"]:
                await respond(interaction, EmbedUtils.error("Approve Failed", result["message"]), button_view([BACK_TO_PANEL]))
                return
            await respond(interaction, EmbedUtils.success("Deposit Approved", f"{format_rupiah(deposit.get('amount'))} credited to `{deposit.get('userId')}`."),
                          button_view([(f"{Emojis.BACK} Deposits", "admin:deposits"), BACK_TO_PANEL]))
            await self.bot.notifier.send_user(deposit["userId"], embed=EmbedUtils.success(
                "Deposit Confirmed",
                f"{format_rupiah(deposit.get('amount'))} was added to your balance.\n"
                f"New balance: **{format_rupiah(result['new_balance'])}**",
            ))
        elif sub_action == "reject":
            if deposit.get("status") != "pending":
                await respond(interaction, EmbedUtils.error("Cannot Reject", f"Deposit is already {deposit.get('status')}."), button_view([BACK_TO_PANEL]))
                return
            self.bot.user_states.set(interaction.user.id, "reject_deposit", deposit_id=deposit_id)
            await respond(
                interaction,
                EmbedUtils.info(f"{Emojis.ERROR} Reject Deposit", f"Send the reason for rejecting `{deposit_id}` as a direct message."),
                button_view([(f"{Emojis.BACK} Back", f"admin:deposit:detail:{deposit_id}")]),
            )
        else:
            await respond(interaction, EmbedUtils.error("Unknown Action", "That action does not exist."), button_view([BACK_TO_PANEL]))

    async def handle_state_message(self, message: discord.Message, state: Dict[str, Any]) -> None:
        if not self.store.users.is_owner(message.author.id):
            self.bot.user_states.clear(message.author.id)
            return

        step = state["step"]
        if step == "reject_order":
            await self._receive_order_rejection(message, state["data"].get("order_id"))
        elif step == "reject_deposit":
            await self._receive_deposit_rejection(message, state["data"].get("deposit_id"))
        elif step == "product_files":
            await self._receive_product_files(message, state["data"].get("product_id"))
        else:
            await self._receive_product_field(message, step)

    async def _receive_product_field(self, message: discord.Message, step: str):
        text = Validator.sanitize(message.content or "")
        states = self.bot.user_states
        user_id = message.author.id

        if step == "product_name":
            if not Validator.is_valid_product_name(text):
                await message.channel.send(embed=EmbedUtils.error("Invalid Name", "The name must be 3-100 characters."))
                return
            states.advance(user_id, "product_description", name=text)
            await message.channel.send(embed=EmbedUtils.info("New Product (2/6)", "Send the product **description** (10-1000 characters)."))
        elif step == "product_description":
            if not Validator.is_valid_length(text, 10, 1000):
                await message.channel.send(embed=EmbedUtils.error("Invalid Description", "The description must be 10-1000 characters."))
                return
            states.advance(user_id, "product_price", description=text)
            await message.channel.send(embed=EmbedUtils.info("New Product (3/6)", "Send the **price** in Rupiah, for example `25000`."))
        elif step == "product_price":
            price = parse_amount(text)
            if price is None or not Validator.is_valid_price(price):
                await message.channel.send(embed=EmbedUtils.error("Invalid Price", "The price must be between Rp 100 and Rp 100.000.000."))
                return
            states.advance(user_id, "product_category", price=price)
            await message.channel.send(embed=EmbedUtils.info(
                "New Product (4/6)",
                "Send the **category**: " + ", ".join(f"`{c}`" for c in PRODUCT_CATEGORIES),
            ))
        elif step == "product_category":
            category = text.strip().lower()
            if not Validator.is_valid_category(category):
                await message.channel.send(embed=EmbedUtils.error("Invalid Category", "Pick one of: " + ", ".join(PRODUCT_CATEGORIES)))
                return
            states.advance(user_id, "product_stock", category=category)
            await message.channel.send(embed=EmbedUtils.info("New Product (5/6)", f"Send the **stock** amount, or `skip` for {DEFAULT_STOCK}."))
        elif step == "product_stock":
            await self._create_product(message, text)

    async def _create_product(self, message: discord.Message, text: str):
        user_id = message.author.id
        if text.strip().lower() in ("skip", "-"):
            stock = DEFAULT_STOCK
        elif text.strip().isdigit():
            stock = int(text.strip())
        else:
            await message.channel.send(embed=EmbedUtils.error("Invalid Stock", "Send a whole number or `skip`."))
            return

        draft = self.bot.user_states.get(user_id)["data"]
        result = await self.store.products.create_product({
            "name": draft.get("name"),
            "description": draft.get("description"),
            "price": draft.get("price"),
            "category": draft.get("category"),
            "sellerId": user_id,
            "stock": stock,
        })
        if not result["ok"]:
            self.bot.user_states.clear(user_id)
            await message.channel.send(embed=EmbedUtils.error("Product Not Created", result["message"]))
            return

        product = result["product"]
        self.bot.user_states.set(user_id, "product_files", product_id=product["productId"])
        await message.channel.send(embed=EmbedUtils.info(
            "New Product (6/6)",
            f"**{product['name']}** was created. Send the product files as attachments, then use `/done`.",
        ))

    async def _receive_product_files(self, message: discord.Message, product_id: str):
        if not message.attachments:
            await message.channel.send(embed=EmbedUtils.info("Waiting for Files", "Attach the product files, or use `/done` to finish."))
            return

        saved, failed = [], []
        for attachment in message.attachments:
            try:
                data = await attachment.read()
            except discord.HTTPException as e:
                logger.error(f"Failed to download attachment {attachment.filename}: {e}")
                failed.append(f"{attachment.filename}: download failed")
                continue
            result = await self.store.products.add_file_to_product(product_id, data, attachment.filename)
            if result["ok"]:
                saved.append(f"{attachment.filename} ({format_size(result['file_info']['size'])})")
            else:
                failed.append(f"{attachment.filename}: {result['message']}")

        lines = [f"{Emojis.SUCCESS} {line}" for line in saved] + [f"{Emojis.ERROR} {line}" for line in failed]
        await message.channel.send(embed=EmbedUtils.info(
            f"{Emojis.UPLOAD} Files",
            "\n".join(lines)[:3500] + "\n\nSend more files or use `/done` to finish.",
        ))

    async def _receive_order_rejection(self, message: discord.Message, order_id: str):
        reason = Validator.sanitize(message.content or "") or "No reason given"
        self.bot.user_states.clear(message.author.id)
        result = await self.store.reject_order(order_id, reason, message.author.id)
        if not result["ok"]:
            await message.channel.send(embed=EmbedUtils.error("Reject Failed", result["message"]))
            return

        order = result["order"]
        refund_note = f"\n{format_rupiah(order.get('amount'))} was refunded to your balance." if result["refunded"] else ""
        await message.channel.send(embed=EmbedUtils.success("Order Rejected", f"Order `{order_id}` was rejected."),
                                   view=button_view([(f"{Emojis.BACK} Orders", "admin:orders")]))
        await self.bot.notifier.send_user(order["userId"], embed=EmbedUtils.error(
            "Order Rejected",
            f"Your order `{order_id}` for **{order.get('productName')}** was rejected.\nReason: {reason}{refund_note}",
        ))

    async def _receive_deposit_rejection(self, message: discord.Message, deposit_id: str):
        reason = Validator.sanitize(message.content or "") or "No reason given"
        self.bot.user_states.clear(message.author.id)
        result = await self.store.reject_deposit(deposit_id, reason, message.author.id)
        if not result["ok"]:
            await message.channel.send(embed=EmbedUtils.error("Reject Failed", result["message"]))
            return

        deposit = result["deposit"]
        await message.channel.send(embed=EmbedUtils.success("Deposit Rejected", f"Deposit `{deposit_id}` was rejected."),
                                   view=button_view([(f"{Emojis.BACK} Deposits", "admin:deposits")]))
        await self.bot.notifier.send_user(deposit["userId"], embed=EmbedUtils.error(
            "Deposit Rejected",
            f"Your deposit of {format_rupiah(deposit.get('amount'))} was rejected.\nReason: {reason}",
        ))


async def setup(bot):
    await bot.add_cog(Admin(bot))
