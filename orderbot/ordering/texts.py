# orderbot/ordering/texts.py
# Customer- and admin-facing copy. Placeholders use str.format.

WELCOME = (
    "Hi! 👋 Welcome to *{restaurant}*.\nWhat would you like to do today?\n\n"
    "*1.* Place an order\n*2.* See our location 📍\n*3.* Check my order status 🚚"
)
WELCOME_CAPTION = "Welcome to {restaurant}!"
MAIN_MENU_INVALID = "⚠️ Please choose a valid option: *1*, *2* or *3*."

LOCATION = "📍 You can find us at:\n{location}\nSee you soon! 🫶"

STATUS_PROMPT = "🚚 To check your order I only need your *order number*."
STATUS_BAD_FORMAT = "🔎 I need a valid order number in the format *ABC-123*."
STATUS_NOT_FOUND = "😕 We couldn't find that order. Check the number and try again."
STATUS_REPORT = (
    "📦 *Order {code} status:* {status}\n\n"
    "🗓️ *Date:* {date}\n"
    "⏰ *Time:* {time}\n"
    "📍 *Address:* {address}\n"
    "💳 *Payment method:* {payment}\n"
    "💰 *Total:* {total}\n\n"
    "📝 *Items:*\n{items}"
)

ORDER_CANCELLED = "🛑 Order cancelled. Send us a message whenever you want to start a new one."
MENU_INVALID = "⚠️ Invalid option. Please pick a number from the menu."
MENU_CHANGED = "ℹ️ Our menu was just updated, please choose again from this list:"
QUANTITY_PROMPT = "✅ Great, how many *{item}* would you like?"
QUANTITY_INVALID = "⚠️ Please enter a valid quantity (a number greater than 0)."
ADD_MORE = "🍽️ Would you like anything else from the menu?\n*1.* Yes\n*2.* No"
YES_NO_INVALID = "⚠️ Please answer *1* (Yes) or *2* (No)."

OFFER_DRINKS = "🥤 Would you like a _*drink*_ with your order?\n*1.* Yes\n*2.* No"
DRINKS_UNAVAILABLE = "We couldn't load the drinks menu right now."
DRINK_INVALID = "⚠️ Invalid option. Please pick a valid drink."
DRINK_QUANTITY_PROMPT = "How many *{item}* would you like?"
ADD_DRINK = "🥤 Would you like another drink?\n*1.* Yes\n*2.* No"

SUMMARY = "✅ Here is your *order summary*:\n\n{lines}\n\n💰 *TOTAL:* {total}"
SUMMARY_INSTRUCTIONS = '\n\n📝 *Instructions:* "{instructions}"'
SUMMARY_OPTIONS = (
    "\n\nWhat would you like to do?\n\n"
    "*1.* Modify my order ✏️\n"
    "*2.* Add special instructions 📝\n"
    "*3.* Add something else\n"
    "*4.* Confirm and continue ✅"
)
SUMMARY_INVALID = "⚠️ Please choose a valid option (1, 2, 3 or 4)."
CART_EMPTY = "Your cart is empty. Here is the menu so you can add something."

INSTRUCTIONS_PROMPT = "✍️ Write the instructions for your order (e.g. no onion, extra cheese)."

MODIFY_PROMPT = "✏️ Which item do you want to change?\n{lines}\n\n*0.* Cancel"
MODIFY_INVALID = "⚠️ Invalid option."
MODIFY_ACTION = "🔧 For {qty}x {item}, choose:\n*1.* Change quantity\n*2.* Remove from order\n*0.* Cancel"
MODIFY_QUANTITY_PROMPT = "What is the new quantity for *{item}*?"

NAME_PROMPT = "🧾 Almost done, whose name should we put the order under?"
ADDRESS_PROMPT = "🏡 Perfect, *{name}*! Please send me the full delivery address."

PAYMENT_PROMPT = "💳 How would you like to pay?\n{options}"
PAYMENT_INVALID = "⚠️ Please choose a valid payment option."
CASH_PROMPT = "💵 How much will you pay with? (e.g. 50000)"
CASH_INVALID = "⚠️ Please enter an amount greater than or equal to the total ({total})."

WALLET_NUMBER_PROMPT = (
    "You chose {method}. Please send the payment to our line *{pay_number}*.\n\n"
    "Once done, *type the 10-digit phone number you paid from* so we can match it to your order."
)
WALLET_NUMBER_INVALID = "The phone number must have 10 digits. Please try again (attempts left: {left})."
WALLET_NUMBER_EXHAUSTED = "There seems to be a problem with the number. Send us a message to start again."
PROOF_PROMPT = "Perfect. Now send me the payment receipt (a photo or screenshot)."
PROOF_NOT_IMAGE = "Please send an image as your payment receipt."
PROOF_DOWNLOAD_FAILED = "I couldn't process the file you sent. Could you send it again?"
PROOF_RECEIVED = "Got your receipt! One moment while it is verified."
PROOF_REMINDER = "Everything OK with the payment? Remember to send me the receipt, or type *menu* to start over."
VERIFICATION_WAIT = "Your payment is still being verified, I'll let you know as soon as there is an answer."
VERIFICATION_SLOW = "The admin is taking a little longer to verify your payment. I'll notify you as soon as there is an answer."

ADMIN_PROOF_CAPTION = "📌 *New {method} payment to verify*\n\n• *Customer:* {name} ({identity})\n• *Paid from:* {wallet}\n• *Order:* {items}\n• *Amount:* {total}"
ADMIN_PROOF_PROMPT = "Verification ID: {verification_id}\n\n➡️ *Options:*\n1. Confirm\n2. Deny"

PAYMENT_CONFIRMED = "✅ Your payment has been confirmed!"
PAYMENT_DENIED = (
    "❌ We couldn't recognise the payment. Do you want to try again?\n\n"
    "1. Send the receipt again\n2. Back to main menu\n3. Talk to an agent"
)
PAYMENT_DENIED_FINAL = "❌ Your payment was denied again. An agent will contact you to help."
PAYMENT_DENIED_INVALID = "Please choose one of the options: 1, 2 or 3."
RESEND_PROOF = "Please send the payment receipt again."
BACK_TO_MAIN = "You're back at the main menu. Send a message to start."
AGENT_HANDOFF = "One moment, I'm connecting you with an agent."
ADMIN_AGENT_REQUEST = "🙋 Customer {name} ({identity}) needs an agent: {reason}."

CONFIRMATION = (
    "🎉 *Your order is confirmed!* 🎉\n\n"
    "📦 *Order:* {code}\n"
    "🙋 *Customer:* {name}\n"
    "📍 *Address:* {address}\n\n"
    "🧾 *Items:*\n{lines}\n"
)
CONFIRMATION_CASH = "\n💵 Paying with: {tendered}\n🔁 Change: {change}"
CONFIRMATION_FOOTER = "\n\n⏱️ Your order will arrive in about *{minutes} minutes*.\nThanks for choosing us! 🧡"
TOTAL_AND_PAYMENT = "\n💰 *Total:* {total}\n💳 *Payment method:* {payment}"
INSTRUCTIONS_LINE = '\n📝 *Instructions:* "{instructions}"\n'

ADMIN_NEW_ORDER = (
    "🚨 *NEW ORDER* 🚨\n\n"
    "📦 *Order:* {code}\n"
    "🙋 *Customer:* {name}\n"
    "📍 *Address:* {address}\n\n"
    "🧾 *Items:*\n{lines}\n"
)

INACTIVITY_WARNING = "👋 Are you still there? If you don't reply, this conversation will close soon."
INACTIVITY_TIMEOUT = "We closed this conversation due to inactivity. Write again whenever you want to order!"

GENERIC_ERROR = "Oops! Something went wrong on our side. Please try again. If it keeps happening, contact the admin."
