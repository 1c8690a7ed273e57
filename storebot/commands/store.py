from pathlib import Path
from typing import Any, Dict, Tuple

import discord
from discord import app_commands

from ..services.callbacks import CallbackData
from ..utils.base_cog import BaseCog
from ..utils.constants import ORDER_STATUS_LABELS, Colors, Emojis
from ..utils.embeds import EmbedUtils
from ..utils.formatting import format_date, format_rupiah, format_size, truncate
from ..utils.logger import logger
from ..utils.pagination import paginate
from ..utils.views import button_view, chunk, page_row, respond

MAX_ATTACHMENTS = 10

BACK_TO_MENU = ("Main Menu", "menu:main")


def _status_label(status: str) -> str:
    return ORDER_STATUS_LABELS.get(status, str(status).title())


class Storefront(BaseCog):
    def __init__(self, bot):
        super().__init__(bot)

    async def cog_load(self):
        self.bot.callbacks.register("menu", self.handle_menu)
        self.bot.callbacks.register("product", self.handle_product)
        self.bot.callbacks.register("pay", self.handle_pay)
        self.bot.callbacks.register("order", self.handle_order)

    async def cog_unload(self):
        for namespace in ("menu", "product", "pay", "order"):
            self.bot.callbacks.unregister(namespace)

    @app_commands.command(name="start", description="Open the store menu")
    async def start(self, interaction: discord.Interaction):
        user = interaction.user
        limit = self.store.security.check_rate_limit(user.id)
        if not limit["allowed"]:
            await interaction.response.send_message(
                embed=EmbedUtils.error("Slow Down", f"Too many requests. Please wait {limit['retry_after']} seconds."),
                ephemeral=True,
            )
            return

        await self.store.ensure_user(user.id, user.name, getattr(user, "global_name", None) or "")
        access = await self.store.users.check_user_access(user.id)
        if not access["allowed"]:
            await interaction.response.send_message(
                embed=EmbedUtils.error("Access Denied", access["reason"]),
                ephemeral=True,
            )
            return

        self.bot.user_states.clear(user.id)
        embed, view = await self.main_menu(user.id, user.display_name)
        await interaction.response.send_message(embed=embed, view=view, ephemeral=True)

    async def main_menu(self, user_id: int, display_name: str) -> Tuple[discord.Embed, discord.ui.View]:
        user = await self.store.users.get_user(user_id) or {}
        embed = EmbedUtils.panel(
            f"{Emojis.STORE} {self.config.bot_name}",
            f"Welcome, **{display_name}**!\nBrowse digital products, top up your balance and track your orders.",
        )
        embed.add_field(name=f"{Emojis.MONEY} Balance", value=format_rupiah(user.get("balance")), inline=True)
        embed.add_field(name=f"{Emojis.PACKAGE} Orders", value=str(user.get("totalOrders") or 0), inline=True)
        if self.config.bot_logo:
            embed.set_thumbnail(url=self.config.bot_logo)

        rows = [
            [
                (f"{Emojis.STORE} Products", "menu:products", discord.ButtonStyle.primary),
                (f"{Emojis.PACKAGE} My Orders", "menu:orders"),
                (f"{Emojis.MONEY} Deposit", "menu:deposit", discord.ButtonStyle.success),
            ],
            [
                (f"{Emojis.CARD} Balance", "menu:balance"),
                (f"{Emojis.USER} Profile", "menu:profile"),
                (f"{Emojis.INFO} Help", "menu:help"),
            ],
        ]
        if self.store.users.is_owner(user_id):
            rows.append([(f"{Emojis.ADMIN} Admin Panel", "admin:panel", discord.ButtonStyle.danger)])
        return embed, button_view(*rows)

    async def handle_menu(self, interaction: discord.Interaction, data: CallbackData):
        user = interaction.user
        self.bot.user_states.clear(user.id)

        if data.action == "main":
            embed, view = await self.main_menu(user.id, user.display_name)
            await respond(interaction, embed, view)
        elif data.action == "products":
            await self.show_products(interaction, 1)
        elif data.action == "orders":
            await self.show_orders(interaction, 1)
        elif data.action == "deposit":
            deposits = self.bot.get_cog("Deposits")
            await deposits.show_deposit_menu(interaction)
        elif data.action == "balance":
            await self.show_balance(interaction)
        elif data.action == "profile":
            await self.show_profile(interaction)
        elif data.action == "help":
            await self.show_help(interaction)
        else:
            await respond(interaction, EmbedUtils.error("Unknown Menu", "That menu does not exist."), button_view([BACK_TO_MENU]))

    async def show_products(self, interaction: discord.Interaction, page: int):
        products = await self.store.products.get_all_products({"status": "active", "sortBy": "newest"})
        if not products:
            await respond(
                interaction,
                EmbedUtils.info(f"{Emojis.STORE} Products", "No products are available yet."),
                button_view([BACK_TO_MENU]),
            )
            return

        items, page, total_pages = paginate(products, page, self.config.items_per_page)
        embed = EmbedUtils.panel(f"{Emojis.STORE} Products", f"Page {page}/{total_pages} - {len(products)} products")
        for product in items:
            stock = product.get("stock") or 0
            embed.add_field(
                name=truncate(product.get("name"), 250),
                value=f"{format_rupiah(product.get('price'))} | Stock: {stock if stock > 0 else 'Sold out'}",
                inline=False,
            )

        buttons = [(truncate(p.get("name"), 70), f"product:view:{p['productId']}") for p in items]
        view = button_view(*chunk(buttons, 4), page_row("product:page", page, total_pages), [BACK_TO_MENU])
        await respond(interaction, embed, view)

    async def handle_product(self, interaction: discord.Interaction, data: CallbackData):
        if data.action == "page":
            await self.show_products(interaction, data.int_arg(0, 1))
            return

        product_id = data.arg(0)
        product = await self.store.products.get_product(product_id) if product_id else None
        if not product or product.get("status") != "active":
            await respond(interaction, EmbedUtils.error("Not Found", "Product not found."), button_view([("Products", "menu:products")]))
            return

        if data.action == "view":
            await self.store.products.increment_view_count(product_id)
            await self.show_product(interaction, product)
        elif data.action == "buy":
            await self.show_checkout(interaction, product)
        elif data.action == "info":
            await self.show_product_info(interaction, product)
        else:
            await respond(interaction, EmbedUtils.error("Unknown Action", "That action does not exist."), button_view([BACK_TO_MENU]))

    async def show_product(self, interaction: discord.Interaction, product: Dict[str, Any]):
        stock = product.get("stock") or 0
        embed = EmbedUtils.panel(product.get("name") or "Product", truncate(product.get("description"), 3500))
        embed.add_field(name="Price", value=format_rupiah(product.get("price")), inline=True)
        embed.add_field(name="Category", value=str(product.get("category") or "other").title(), inline=True)
        embed.add_field(name="Stock", value=str(stock) if stock > 0 else "Sold out", inline=True)
        embed.add_field(name="Sold", value=str(product.get("totalSales") or 0), inline=True)

        product_id = product["productId"]
        actions = [(f"{Emojis.INFO} Details", f"product:info:{product_id}")]
        if stock > 0:
            actions.insert(0, (f"{Emojis.CARD} Buy", f"product:buy:{product_id}", discord.ButtonStyle.success))
        await respond(interaction, embed, button_view(actions, [(f"{Emojis.BACK} Products", "menu:products")]))

    async def show_product_info(self, interaction: discord.Interaction, product: Dict[str, Any]):
        stats = await self.store.products.get_product_stats(product["productId"]) or {}
        metadata = product.get("metadata") or {}
        embed = EmbedUtils.info(f"{Emojis.INFO} {product.get('name')}", "Product details")
        embed.add_field(name="Files", value=str(metadata.get("fileCount") or 0), inline=True)
        embed.add_field(name="Total Size", value=format_size(metadata.get("fileSize") or 0), inline=True)
        embed.add_field(name="Version", value=str(metadata.get("version") or "1.0"), inline=True)
        embed.add_field(name="Views", value=str(stats.get("totalViews", 0)), inline=True)
        embed.add_field(name="Sales", value=str(stats.get("totalSales", 0)), inline=True)
        embed.add_field(name="Added", value=format_date(product.get("createdAt")), inline=True)
        await respond(interaction, embed, button_view([(f"{Emojis.BACK} Back", f"product:view:{product['productId']}")]))

    async def show_checkout(self, interaction: discord.Interaction, product: Dict[str, Any]):
        user = await self.store.users.get_user(interaction.user.id) or {}
        balance = user.get("balance") or 0
        price = product.get("price") or 0

        embed = EmbedUtils.panel(f"{Emojis.CARD} Checkout", f"**{product.get('name')}**")
        embed.add_field(name="Price", value=format_rupiah(price), inline=True)
        embed.add_field(name="Your Balance", value=format_rupiah(balance), inline=True)

        back = (f"{Emojis.BACK} Back", f"product:view:{product['productId']}")
        if balance < price:
            embed.color = Colors.WARNING
            embed.add_field(name="Missing", value=format_rupiah(price - balance), inline=True)
            view = button_view([(f"{Emojis.MONEY} Deposit", "menu:deposit", discord.ButtonStyle.success), back])
        else:
            view = button_view([(f"{Emojis.SUCCESS} Pay with Balance", f"pay:balance:{product['productId']}", discord.ButtonStyle.success), back])
        await respond(interaction, embed, view)

    async def handle_pay(self, interaction: discord.Interaction, data: CallbackData):
        if data.action != "balance" or not data.arg(0):
            await respond(interaction, EmbedUtils.error("Unknown Payment", "That payment option does not exist."), button_view([BACK_TO_MENU]))
            return

        result = await self.store.purchase_with_balance(interaction.user.id, data.arg(0))
        if not result["ok"]:
            await respond(
                interaction,
                EmbedUtils.error("Payment Failed", result["message"]),
                button_view([(f"{Emojis.MONEY} Deposit", "menu:deposit"), BACK_TO_MENU]),
            )
            return

        order = result["order"]
        order_id = order["orderId"]
        if result["requires_approval"]:
            embed = EmbedUtils.success(
                "Order Placed",
                f"Order `{order_id}` was paid from your balance and is waiting for approval.",
            )
            view = button_view([(f"{Emojis.PACKAGE} View Order", f"order:detail:{order_id}"), BACK_TO_MENU])
        else:
            embed = EmbedUtils.success("Purchase Complete", f"Order `{order_id}` is ready to download.")
            view = button_view([(f"{Emojis.DOWNLOAD} Download", f"order:download:{order_id}", discord.ButtonStyle.success), BACK_TO_MENU])
        embed.add_field(name="Product", value=order.get("productName") or "-", inline=True)
        embed.add_field(name="Paid", value=format_rupiah(order.get("amount")), inline=True)
        embed.add_field(name="Remaining Balance", value=format_rupiah(result["new_balance"]), inline=True)
        await respond(interaction, embed, view)

        if result["requires_approval"] or self.config.notify_owner_on_order:
            await self.notify_owner_of_order(interaction.user, order, result["requires_approval"])

    async def notify_owner_of_order(self, buyer: discord.abc.User, order: Dict[str, Any], needs_approval: bool):
        title = f"{Emojis.PENDING} Order Awaiting Approval" if needs_approval else f"{Emojis.SUCCESS} New Order"
        embed = EmbedUtils.panel(title, f"Order `{order['orderId']}`", color=Colors.WARNING if needs_approval else Colors.SUCCESS)
        embed.add_field(name="Buyer", value=f"{buyer} (`{buyer.id}`)", inline=False)
        embed.add_field(name="Product", value=order.get("productName") or "-", inline=True)
        embed.add_field(name="Amount", value=format_rupiah(order.get("amount")), inline=True)

        view = None
        if needs_approval:
            view = button_view([
                (f"{Emojis.SUCCESS} Approve", f"admin:order:approve:{order['orderId']}", discord.ButtonStyle.success),
                (f"{Emojis.ERROR} Reject", f"admin:order:reject:{order['orderId']}", discord.ButtonStyle.danger),
                ("Details", f"admin:order:detail:{order['orderId']}"),
            ])
        await self.bot.notifier.notify_owner(embed=embed, view=view)

    async def show_orders(self, interaction: discord.Interaction, page: int):
        orders = await self.store.orders.get_user_orders(interaction.user.id)
        if not orders:
            await respond(
                interaction,
                EmbedUtils.info(f"{Emojis.PACKAGE} My Orders", "You have no orders yet."),
                button_view([(f"{Emojis.STORE} Products", "menu:products"), BACK_TO_MENU]),
            )
            return

        items, page, total_pages = paginate(orders, page, self.config.orders_per_page)
        embed = EmbedUtils.panel(f"{Emojis.PACKAGE} My Orders", f"Page {page}/{total_pages} - {len(orders)} orders")
        for order in items:
            embed.add_field(
                name=f"{order['orderId']}",
                value=(
                    f"{truncate(order.get('productName'), 80)}\n"
                    f"{format_rupiah(order.get('amount'))} | {_status_label(order.get('status'))}\n"
                    f"{format_date(order.get('createdAt'))}"
                ),
                inline=False,
            )
        buttons = [(order["orderId"], f"order:detail:{order['orderId']}") for order in items]
        view = button_view(*chunk(buttons, 3), page_row("order:page", page, total_pages), [BACK_TO_MENU])
        await respond(interaction, embed, view)

    async def handle_order(self, interaction: discord.Interaction, data: CallbackData):
        if data.action == "page":
            await self.show_orders(interaction, data.int_arg(0, 1))
            return

        order_id = data.arg(0)
        order = await self.store.orders.get_order(order_id) if order_id else None
        if not order or order.get("userId") != interaction.user.id:
            await respond(interaction, EmbedUtils.error("Not Found", "Order not found."), button_view([("My Orders", "menu:orders")]))
            return

        if data.action == "detail":
            await self.show_order(interaction, order)
        elif data.action == "download":
            await self.send_order_files(interaction, order)
        elif data.action == "cancel":
            result = await self.store.cancel_order_for_user(interaction.user.id, order_id)
            if not result["ok"]:
                await respond(interaction, EmbedUtils.error("Cannot Cancel", result["message"]), button_view([("My Orders", "menu:orders")]))
                return
            note = f"\n{format_rupiah(order.get('amount'))} was refunded to your balance." if result["refunded"] else ""
            await respond(
                interaction,
                EmbedUtils.success("Order Cancelled", f"Order `{order_id}` was cancelled.{note}"),
                button_view([("My Orders", "menu:orders"), BACK_TO_MENU]),
            )
        else:
            await respond(interaction, EmbedUtils.error("Unknown Action", "That action does not exist."), button_view([BACK_TO_MENU]))

    async def show_order(self, interaction: discord.Interaction, order: Dict[str, Any]):
        receipt = await self.store.orders.get_order_receipt(order["orderId"]) or {}
        embed = EmbedUtils.panel(f"{Emojis.PACKAGE} Order {order['orderId']}")
        embed.add_field(name="Product", value=receipt.get("productName") or "-", inline=False)
        embed.add_field(name="Amount", value=format_rupiah(receipt.get("amount")), inline=True)
        embed.add_field(name="Status", value=_status_label(order.get("status")), inline=True)
        embed.add_field(name="Payment", value=str(order.get("paymentStatus") or "-").title(), inline=True)
        embed.add_field(name="Method", value=str(receipt.get("paymentMethod") or "-"), inline=True)
        embed.add_field(name="Date", value=receipt.get("date") or "-", inline=True)
        if order.get("rejectionReason"):
            embed.add_field(name="Reason", value=truncate(order["rejectionReason"], 1000), inline=False)

        actions = []
        if order.get("status") == "completed":
            actions.append((f"{Emojis.DOWNLOAD} Download", f"order:download:{order['orderId']}", discord.ButtonStyle.success))
        if order.get("status") in ("pending", "processing"):
            actions.append((f"{Emojis.ERROR} Cancel Order", f"order:cancel:{order['orderId']}", discord.ButtonStyle.danger))
        await respond(interaction, embed, button_view(actions, [(f"{Emojis.BACK} My Orders", "menu:orders")]))

    async def send_order_files(self, interaction: discord.Interaction, order: Dict[str, Any]):
        if order.get("status") != "completed":
            await interaction.response.send_message(
                embed=EmbedUtils.error("Not Ready", "Files are available once the order is completed."),
                ephemeral=True,
            )
            return

        product = await self.store.products.get_product(order["productId"])
        stored = [f for f in (product or {}).get("files") or [] if Path(f.get("path") or "").is_file()]
        if not stored:
            await interaction.response.send_message(
                embed=EmbedUtils.error("No Files", "This product has no files yet. Please contact the seller."),
                ephemeral=True,
            )
            return

        await interaction.response.defer(ephemeral=True)
        attachments = [discord.File(f["path"], filename=f.get("originalName") or Path(f["path"]).name) for f in stored[:MAX_ATTACHMENTS]]
        try:
            await interaction.followup.send(
                content=f"{Emojis.DOWNLOAD} Files for order `{order['orderId']}`",
                files=attachments,
                ephemeral=True,
            )
        except discord.HTTPException as e:
            logger.error(f"Failed to deliver files for order {order['orderId']}: {e}")
            await interaction.followup.send(
                embed=EmbedUtils.error("Delivery Failed", "The files could not be sent. Please contact the seller."),
                ephemeral=True,
            )
        finally:
            for attachment in attachments:
                attachment.close()
        if len(stored) > MAX_ATTACHMENTS:
            await interaction.followup.send(
                f"{Emojis.WARNING} Only the first {MAX_ATTACHMENTS} files were sent. Please contact the seller for the rest.",
                ephemeral=True,
            )

    async def show_balance(self, interaction: discord.Interaction):
        stats = await self.store.users.get_user_stats(interaction.user.id) or {}
        embed = EmbedUtils.panel(f"{Emojis.CARD} Balance", color=Colors.SUCCESS)
        embed.add_field(name="Current Balance", value=format_rupiah(stats.get("balance")), inline=False)
        embed.add_field(name="Total Deposits", value=format_rupiah(stats.get("totalDeposits")), inline=True)
        embed.add_field(name="Total Spent", value=format_rupiah(stats.get("totalSpent")), inline=True)
        view = button_view(
            [
                (f"{Emojis.MONEY} Deposit", "menu:deposit", discord.ButtonStyle.success),
                (f"{Emojis.HISTORY} History", "deposit:history"),
            ],
            [BACK_TO_MENU],
        )
        await respond(interaction, embed, view)

    async def show_profile(self, interaction: discord.Interaction):
        stats = await self.store.users.get_user_stats(interaction.user.id) or {}
        embed = EmbedUtils.panel(f"{Emojis.USER} {interaction.user.display_name}")
        embed.add_field(name="User ID", value=f"`{interaction.user.id}`", inline=True)
        embed.add_field(name="Status", value=str(stats.get("status") or "active").title(), inline=True)
        embed.add_field(name="Balance", value=format_rupiah(stats.get("balance")), inline=True)
        embed.add_field(name="Orders", value=str(stats.get("totalOrders", 0)), inline=True)
        embed.add_field(name="Completed", value=str(stats.get("completedOrders", 0)), inline=True)
        embed.add_field(name="Pending", value=str(stats.get("pendingOrders", 0)), inline=True)
        embed.add_field(name="Joined", value=format_date(stats.get("joinedAt")), inline=True)
        embed.add_field(name="Last Active", value=format_date(stats.get("lastActivity")), inline=True)
        await respond(interaction, embed, button_view([BACK_TO_MENU]))

    async def show_help(self, interaction: discord.Interaction):
        embed = EmbedUtils.info(
            f"{Emojis.INFO} Help",
            "\n".join([
                "**How to buy**",
                "1. Top up your balance with **Deposit**.",
                "2. Pick a product under **Products** and pay with your balance.",
                "3. Download the files from **My Orders** once the order completes.",
                "",
                "**Deposits**",
                f"Minimum {format_rupiah(self.config.min_deposit)}, maximum {format_rupiah(self.config.max_deposit)}.",
                "Manual transfers need a proof image and are confirmed by the seller.",
                "",
                "Use `/start` any time to open the menu again.",
            ]),
        )
        await respond(interaction, embed, button_view([BACK_TO_MENU]))


async def setup(bot):
    await bot.add_cog(Storefront(bot))
