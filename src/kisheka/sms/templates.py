"""Reply templates sent back to suppliers, in English and Swahili.

Every reply must fit in one or two SMS segments; keep them short.
"""

from datetime import date

from kisheka.domain.enums import CommandAction, Language

TEMPLATES: dict[Language, dict[str, str]] = {
    Language.EN: {
        "help": (
            "Reply to a purchase order with: ACCEPT, REJECT <reason>, or "
            "MODIFY price <amount> qty <amount> date <YYYY-MM-DD>. "
            "Add the PO number (e.g. PO-001) if you have several orders. "
            "Bulk orders: ACCEPT 1,3 REJECT 2 or ACCEPT ALL."
        ),
        "not_recognized": (
            "Your response was not recognized. Please use: ACCEPT, REJECT, or MODIFY. "
            'Or reply "HELP" for assistance.'
        ),
        "no_pending_order": (
            "Sorry, no pending order found. Please include PO number (PO-XXX) or contact us."
        ),
        "po_not_found": (
            "Sorry, we could not find your purchase order{reference}. Please contact us directly."
        ),
        "token_expired": (
            "The response link for this order has expired. Please contact us for a new order."
        ),
        "already_responded": (
            "You have already responded to {po_number}. If you need changes, please contact us."
        ),
        "missing_unit_cost": (
            "{po_number} cannot be accepted yet. This order requires unit cost information. "
            "Please contact us to provide the unit cost."
        ),
        "missing_bulk_unit_costs": (
            "{po_number} cannot be accepted yet. {count} material(s) have no unit cost: "
            "{materials}. Please contact us to provide unit costs."
        ),
        "bulk_without_materials": "Error: Bulk order has no materials. Please contact us.",
        "confirmation_accept": "Thank you! {po_number} ACCEPTED.{delivery} We'll contact you soon.",
        "confirmation_accept_delivery": " Delivery expected: {date}.",
        "confirmation_reject": "Thank you! {po_number} REJECTED. We'll contact you soon.",
        "modification_received": (
            "Thank you! Modification request for {po_number} received{summary}. "
            "We'll review and respond soon."
        ),
        "partial_received": (
            "Thank you! Partial response for {po_number} received: {summary}. "
            "We'll review and respond soon."
        ),
        "partial_not_supported": (
            "Partial responses are only supported for bulk orders. "
            "Please respond to the entire order or use the web link."
        ),
        "partial_not_processable": (
            "Error: Could not process partial response. Please use the web link or contact us."
        ),
        "accepted_count": "{count} accepted",
        "rejected_count": "{count} rejected",
        "modified_count": "{count} modified",
        "price_label": "Price: KES {value}",
        "quantity_label": "Qty: {value}",
        "date_label": "Date: {value}",
    },
    Language.SW: {
        "help": (
            "Jibu agizo kwa: KUBALI, KATA <sababu>, au "
            "BADILISHA bei <kiasi> kiasi <idadi> tarehe <YYYY-MM-DD>. "
            "Ongeza nambari ya agizo (mf. PO-001) ikiwa una maagizo mengi. "
            "Maagizo ya jumla: KUBALI 1,3 KATA 2 au KUBALI ZOTE."
        ),
        "not_recognized": (
            "Jibu lako halikukubalika. Tafadhali tumia: KUBALI, KATA, au BADILISHA. "
            'Au jibu "MSAADA" kwa msaada.'
        ),
        "no_pending_order": (
            "Samahani, hakuna agizo linalosubiri jibu. Tafadhali tumia nambari ya agizo "
            "(PO-XXX) au wasiliana nasi."
        ),
        "po_not_found": (
            "Samahani, hatukuweza kupata agizo lako la ununuzi{reference}. "
            "Tafadhali wasiliana nasi moja kwa moja."
        ),
        "token_expired": (
            "Kiungo cha jibu kimeisha muda. Tafadhali wasiliana nasi kwa agizo jipya."
        ),
        "already_responded": (
            "Umekwisha jibu agizo {po_number}. Ikiwa unahitaji mabadiliko, tafadhali wasiliana nasi."
        ),
        "missing_unit_cost": (
            "{po_number} haiwezi kukubaliwa bado. Agizo hili linahitaji bei ya kipimo. "
            "Tafadhali wasiliana nasi kutoa bei."
        ),
        "missing_bulk_unit_costs": (
            "{po_number} haiwezi kukubaliwa bado. Vifaa {count} havina bei ya kipimo: "
            "{materials}. Tafadhali wasiliana nasi kutoa bei."
        ),
        "bulk_without_materials": "Hitilafu: Agizo la jumla halina vifaa. Tafadhali wasiliana nasi.",
        "confirmation_accept": "Asante! {po_number} IMEKUBALIWA.{delivery} Tutawasiliana hivi karibuni.",
        "confirmation_accept_delivery": " Uwasilishaji unatarajiwa: {date}.",
        "confirmation_reject": "Asante! {po_number} IMEKATALIWA. Tutawasiliana hivi karibuni.",
        "modification_received": (
            "Asante! Ombi la mabadiliko la {po_number} limepokelewa{summary}. "
            "Tutakagua na kujibu hivi karibuni."
        ),
        "partial_received": (
            "Asante! Jibu la sehemu kwa {po_number} limepokelewa: {summary}. "
            "Tutakagua na kujibu hivi karibuni."
        ),
        "partial_not_supported": (
            "Majibu ya sehemu yanaruhusiwa tu kwa maagizo ya jumla. "
            "Tafadhali jibu agizo zima au tumia kiungo cha wavuti."
        ),
        "partial_not_processable": (
            "Hitilafu: Hatukuweza kushughulikia jibu la sehemu. "
            "Tafadhali tumia kiungo cha wavuti au wasiliana nasi."
        ),
        "accepted_count": "{count} zimekubaliwa",
        "rejected_count": "{count} zimekataliwa",
        "modified_count": "{count} zimebadilishwa",
        "price_label": "Bei: KES {value}",
        "quantity_label": "Kiasi: {value}",
        "date_label": "Tarehe: {value}",
    },
}


def render(key: str, language: Language = Language.EN, **kwargs) -> str:
    """Render a reply template, falling back to English for missing keys."""
    table = TEMPLATES.get(language, TEMPLATES[Language.EN])
    template = table.get(key) or TEMPLATES[Language.EN][key]
    try:
        return template.format(**kwargs)
    except (KeyError, IndexError):
        return template


def format_date(value: date) -> str:
    """``Nov 20, 2026``: the short form used in confirmation texts."""
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def format_amount(value: float) -> str:
    """Thousands-separated amount without a trailing ``.0``."""
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def confirmation(action: CommandAction, po_number: str, language: Language,
                 delivery_date: date | None = None) -> str:
    """Accept / reject confirmation sent after a successful transition."""
    if action == CommandAction.ACCEPT:
        delivery = ""
        if delivery_date:
            delivery = render("confirmation_accept_delivery", language, date=format_date(delivery_date))
        return render("confirmation_accept", language, po_number=po_number, delivery=delivery)
    return render("confirmation_reject", language, po_number=po_number)


def modification_received(po_number: str, language: Language, changes: dict) -> str:
    """Acknowledge a modification request, listing the requested deltas."""
    parts = []
    if changes.get("unit_cost") is not None:
        parts.append(render("price_label", language, value=format_amount(changes["unit_cost"])))
    if changes.get("quantity") is not None:
        parts.append(render("quantity_label", language, value=format_amount(changes["quantity"])))
    if changes.get("delivery_date"):
        parts.append(render("date_label", language, value=changes["delivery_date"]))
    summary = f": {', '.join(parts)}" if parts else ""
    return render("modification_received", language, po_number=po_number, summary=summary)


def count_summary(language: Language, accepted: int, rejected: int, modified: int) -> str:
    """``2 accepted, 1 rejected`` in the supplier's language."""
    parts = []
    if accepted:
        parts.append(render("accepted_count", language, count=accepted))
    if rejected:
        parts.append(render("rejected_count", language, count=rejected))
    if modified:
        parts.append(render("modified_count", language, count=modified))
    return ", ".join(parts)
