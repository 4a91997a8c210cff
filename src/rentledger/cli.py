from __future__ import annotations

import structlog

from .config import BusinessConfig
from .db import Db
from .domain import Booking
from .errors import (
    ConcurrentModificationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .importers import ImportFileError, import_bookings_json, import_customers_csv
from .reports import booking_stats, period_bounds, top_customers
from .services.booking_service import build_booking_service

logger = structlog.get_logger(__name__)

_MONEY_PROMPTS = (
    ("original_price", "original price"),
    ("price_after_bargain", "price after bargain"),
    ("booking_amount", "booking amount"),
    ("advance", "advance"),
    ("final_payment", "final payment"),
    ("security_amount", "security deposit"),
    ("transport_cost", "transport cost"),
    ("dry_cleaning_cost", "dry cleaning cost"),
    ("repair_cost", "repair cost"),
)


def _prompt(msg: str) -> str:
    return input(msg).strip()


def _prompt_customer() -> dict:
    print("\nCustomer:")
    customer = {
        "mobile": _prompt("  mobile: "),
        "name": _prompt("  name: "),
        "email": _prompt("  email (optional): ") or None,
        "location": _prompt("  location (optional): ") or None,
    }
    return customer


def _prompt_items() -> list[dict]:
    items: list[dict] = []
    while True:
        add = _prompt(f"Add item #{len(items) + 1}? (y/n): ").lower()
        if add != "y":
            break
        item: dict = {"dress_id": _prompt("  dress id: ") or None}
        # blank price fields are pre-filled from the catalog
        for key, label in _MONEY_PROMPTS:
            item[key] = _prompt(f"  {label}: ") or None

        costs = []
        while _prompt("  Add additional cost? (y/n): ").lower() == "y":
            costs.append({"reason": _prompt("    reason: "), "amount": _prompt("    amount: ")})
        item["additional_costs"] = costs
        item["status"] = _prompt("  item status (default booked): ") or None
        items.append(item)
    return items


def _print_booking(b: Booking) -> None:
    t = b.totals
    print(f"\n{b.booking_code} (#{b.id}) status={b.status} customer={b.customer.get('name')} {b.customer.get('mobile')}")
    for n, i in enumerate(b.items, start=1):
        print(
            f"  {n}. dress={i.dress_id} price={i.price_after_bargain} discount={i.discount} "
            f"paid={i.total_paid} pending={i.pending} cost={i.total_cost} profit={i.profit} [{i.status}]"
        )
    print(
        f"  total={t.total_price} paid={t.total_paid} pending={t.total_pending} security={t.total_security} "
        f"op_cost={t.total_operational_cost} gross={t.gross_profit} net={t.net_profit}"
    )
    if b.status == "canceled":
        print(f"  canceled at {b.canceled_at:%Y-%m-%d %H:%M} reason={b.cancel_reason}")


def run_cli(db: Db, business: BusinessConfig) -> None:
    service = build_booking_service(business)

    while True:
        print("\n=== Booking Ledger CLI ===")
        print("1) List bookings")
        print("2) Show booking")
        print("3) Create booking")
        print("4) Update booking (replace items / customer)")
        print("5) Complete payment")
        print("6) Cancel booking")
        print("7) Search customers by mobile")
        print("8) Import customers CSV")
        print("9) Import bookings JSON")
        print("10) Report: stats + top customers")
        print("0) Exit")

        choice = _prompt("> ")
        try:
            if choice == "0":
                return

            elif choice == "1":
                status = _prompt("status filter (active/completed/canceled, blank=all): ") or None
                with db.session() as conn:
                    rows = service.list_bookings(conn, status=status, limit=50)
                for r in rows:
                    print(
                        f'#{r["id"]} {r["booking_code"]} {r["status"]} {r["customer_name"]} '
                        f'total={r["total_price"]} paid={r["total_paid"]} pending={r["total_pending"]} '
                        f'net={r["net_profit"]}'
                    )

            elif choice == "2":
                booking_id = int(_prompt("booking id: "))
                with db.session() as conn:
                    booking = service.get_booking(conn, booking_id)
                _print_booking(booking)

            elif choice == "3":
                payload = {"customer": _prompt_customer(), "items": _prompt_items()}
                payload["rental_duration"] = _prompt("rental duration (days, optional): ") or None
                payload["return_deadline"] = _prompt("return deadline YYYY-MM-DD (optional): ") or None
                payload["payment_method"] = _prompt("payment method (optional): ") or None
                payload["notes"] = _prompt("notes (optional): ") or None

                # customer resolution, items and totals are written in one transaction
                booking = db.write(lambda conn: service.create_booking(conn, payload))
                _print_booking(booking)

            elif choice == "4":
                booking_id = int(_prompt("booking id: "))
                payload = {}
                if _prompt("Replace customer? (y/n): ").lower() == "y":
                    payload["customer"] = _prompt_customer()
                if _prompt("Replace the full item list? (y/n): ").lower() == "y":
                    payload["items"] = _prompt_items()
                notes = _prompt("notes (blank keeps current): ")
                if notes:
                    payload["notes"] = notes

                booking = db.write(lambda conn: service.update_booking(conn, booking_id, payload))
                _print_booking(booking)

            elif choice == "5":
                booking_id = int(_prompt("booking id: "))
                booking = db.write(lambda conn: service.complete_booking_payment(conn, booking_id))
                _print_booking(booking)

            elif choice == "6":
                booking_id = int(_prompt("booking id: "))
                reason = _prompt("reason (optional): ") or None
                booking = db.write(lambda conn: service.cancel_booking(conn, booking_id, reason))
                _print_booking(booking)

            elif choice == "7":
                prefix = _prompt(f"mobile prefix (min {business.customer_search_min_digits} digits): ")
                with db.session() as conn:
                    customers = service.search_customers_by_partial_mobile(conn, prefix)
                for c in customers:
                    print(f"#{c.id} {c.mobile} {c.name} bookings={c.total_bookings} spent={c.total_spent}")
                if not customers:
                    print("No customers found.")

            elif choice == "8":
                path = _prompt("path to customers.csv: ")
                with db.transaction() as conn:
                    n = import_customers_csv(conn, path, service.customer_resolver)
                print(f"Imported customers: {n}")

            elif choice == "9":
                path = _prompt("path to bookings.json: ")
                with db.transaction() as conn:
                    n = import_bookings_json(conn, path, service)
                print(f"Imported bookings: {n}")

            elif choice == "10":
                period = _prompt("period (all/week/month/year, default month): ") or "month"
                d1, d2 = period_bounds(period)
                with db.session() as conn:
                    stats = booking_stats(conn, d1, d2)
                    tops = top_customers(conn, limit=10)
                print(f"Booking stats ({period}): {stats}")
                print("Top customers:")
                for t in tops:
                    print(f'  {t["mobile"]} {t["name"]} bookings={t["total_bookings"]} spent={t["total_spent"]}')

            else:
                print("Unknown choice.")

        except ValidationError as e:
            field = f" ({e.field})" if e.field else ""
            print(f"[INPUT ERROR]{field} {e}")
        except InvalidTransitionError as e:
            print(f"[STATE ERROR] {e}")
        except ConcurrentModificationError as e:
            print(f"[CONFLICT] {e} Reload and try again.")
        except NotFoundError as e:
            print(f"[NOT FOUND] {e}")
        except ImportFileError as e:
            print(f"[IMPORT ERROR] {e}")
        except ValueError as e:
            print(f"[VALUE ERROR] {e}")
        except Exception as e:
            logger.exception("cli action failed", choice=choice)
            print(f"[ERROR] {type(e).__name__}: {e}")
