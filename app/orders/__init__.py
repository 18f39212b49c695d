"""
Orders application.

Holds the Order aggregate the payment engine settles, its lines, the product
catalogue slice needed for pricing and stock, the shopping cart, and the
invoice mirror written after a paid order is booked.

Default collaborators used by the payment engine:
    - orders.inventory.StockInventory: reserve / commit / restore stock
    - orders.accounting.InvoiceMirror: invoice + invoice payment mirror
"""
