"""
Patient-facing text in Arabic and English.

`text(locale, key, **values)` looks up a template; the format_* helpers
render dates and times the way each locale reads them. Unknown locales
fall back to Arabic.
"""

from datetime import date, datetime

AR = "AR"
EN = "EN"

AR_DAYS = ["الاثنين", "الثلاثاء", "الأربعاء", "الخميس", "الجمعة", "السبت", "الأحد"]
AR_MONTHS = [
    "يناير", "فبراير", "مارس", "أبريل", "مايو", "يونيو",
    "يوليو", "أغسطس", "سبتمبر", "أكتوبر", "نوفمبر", "ديسمبر",
]
EN_DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
EN_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

TEXTS: dict[str, dict[str, str]] = {
    # Main menu
    "greeting_named": {
        AR: "أهلاً وسهلاً {name} 👋",
        EN: "Welcome {name}! 👋",
    },
    "greeting": {
        AR: "أهلاً وسهلاً 👋",
        EN: "Welcome! 👋",
    },
    "welcome": {
        AR: "أهلاً بك في {clinic} 👋",
        EN: "Welcome to {clinic} 👋",
    },
    "menu_prompt": {
        AR: "{greeting}\n\nكيف نقدر نساعدك اليوم؟",
        EN: "{greeting}\n\nHow can we help you today?",
    },
    "btn_book": {AR: "📅 حجز موعد", EN: "📅 Book"},
    "btn_my_appointments": {AR: "📋 مواعيدي", EN: "📋 My Appointments"},
    "btn_cancel": {AR: "❌ إلغاء موعد", EN: "❌ Cancel Booking"},

    # Booking
    "no_services": {
        AR: "عذراً، لا توجد خدمات متاحة للحجز حالياً. يرجى التواصل مع العيادة.",
        EN: "Sorry, there are no services open for booking right now. Please contact the clinic.",
    },
    "services_header": {AR: "🏥 حجز موعد", EN: "🏥 New Booking"},
    "services_body": {AR: "اختر الخدمة:", EN: "Which service do you need?"},
    "services_button": {AR: "الخدمات", EN: "Services"},
    "services_section": {AR: "الخدمات المتاحة", EN: "Available services"},
    "price": {AR: "{price} ريال", EN: "{price} SAR"},
    "pick_service": {
        AR: "من فضلك اختر خدمة من القائمة.",
        EN: "Please pick a service from the list.",
    },
    "no_doctors": {
        AR: "عذراً، لا يوجد طبيب متاح لهذه الخدمة حالياً.",
        EN: "Sorry, no doctor currently offers this service.",
    },
    "doctors_header": {AR: "👨‍⚕️ اختر الطبيب", EN: "👨‍⚕️ Choose a Doctor"},
    "doctors_body": {AR: "الأطباء المتاحون:", EN: "Doctors available for this service:"},
    "doctors_button": {AR: "الأطباء", EN: "Doctors"},
    "pick_doctor": {
        AR: "من فضلك اختر طبيباً من القائمة.",
        EN: "Please pick a doctor from the list.",
    },
    "no_dates": {
        AR: "عذراً، لا توجد مواعيد متاحة خلال الأسبوع القادم. يرجى التواصل مع العيادة.",
        EN: "Sorry, there are no open slots in the coming week. Please contact the clinic.",
    },
    "dates_header": {AR: "📅 اختر اليوم", EN: "📅 Choose a Day"},
    "dates_body": {AR: "الأيام المتاحة:", EN: "Days with open slots:"},
    "dates_button": {AR: "الأيام", EN: "Days"},
    "date_not_understood": {
        AR: "لم أفهم التاريخ. اختر يوماً من القائمة أو اكتب التاريخ بالصيغة سنة-شهر-يوم.",
        EN: "I couldn't read that date. Pick a day from the list or type it as YYYY-MM-DD.",
    },
    "no_slots_that_day": {
        AR: "لا توجد أوقات متاحة في هذا اليوم. اختر يوماً آخر:",
        EN: "That day is fully booked. Please choose another day:",
    },
    "times_header": {AR: "⏰ اختر الوقت", EN: "⏰ Choose a Time"},
    "times_body": {AR: "الأوقات المتاحة:", EN: "Open time slots:"},
    "times_button": {AR: "الأوقات", EN: "Times"},
    "morning": {AR: "صباحاً", EN: "Morning"},
    "afternoon": {AR: "مساءً", EN: "Afternoon"},
    "pick_time": {
        AR: "من فضلك اختر وقتاً من القائمة.",
        EN: "Please pick a time from the list.",
    },

    # Confirmation
    "summary_title": {AR: "📋 *ملخص الموعد*", EN: "📋 *Booking Summary*"},
    "summary_service": {AR: "🏥 الخدمة: {value}", EN: "🏥 Service: {value}"},
    "summary_doctor": {AR: "👨‍⚕️ الطبيب: {value}", EN: "👨‍⚕️ Doctor: {value}"},
    "summary_date": {AR: "📅 التاريخ: {value}", EN: "📅 Date: {value}"},
    "summary_time": {AR: "⏰ الوقت: {value}", EN: "⏰ Time: {value}"},
    "summary_question": {AR: "هل تؤكد الحجز؟", EN: "Shall we confirm it?"},
    "summary_question_reschedule": {
        AR: "هل تؤكد نقل الموعد لهذا الوقت؟",
        EN: "Move your appointment to this time?",
    },
    "btn_confirm": {AR: "✅ تأكيد", EN: "✅ Confirm"},
    "btn_change_date": {AR: "📅 تغيير اليوم", EN: "📅 Change Date"},
    "btn_abort": {AR: "❌ إلغاء", EN: "❌ Cancel"},
    "quota_reached": {
        AR: "عذراً، وصلت العيادة للحد الأعلى من الحجوزات لهذا الشهر. يرجى التواصل مع العيادة مباشرة.",
        EN: "Sorry, the clinic has reached its booking limit for this month. Please contact the clinic directly.",
    },
    "booked": {
        AR: "✅ تم تأكيد موعدك!\n\nرقم الحجز: {reference}\nسنرسل لك تذكيراً قبل الموعد بـ 24 ساعة وقبله بساعتين.\n\nشكراً لاختيارك عيادتنا 🏥",
        EN: "✅ Your appointment is confirmed!\n\nRef: {reference}\nWe'll remind you 24 hours and 2 hours before it.\n\nThank you for choosing our clinic 🏥",
    },
    "rescheduled": {
        AR: "✅ تم نقل موعدك إلى {when}.\n\nرقم الحجز: {reference}\nسنرسل لك تذكيراً قبل الموعد الجديد.",
        EN: "✅ Your appointment has been moved to {when}.\n\nRef: {reference}\nWe'll remind you before the new time.",
    },
    "booking_abandoned": {
        AR: "تم إلغاء عملية الحجز. أرسل أي رسالة للعودة للقائمة.",
        EN: "Booking cancelled. Send any message to return to the menu.",
    },
    "session_expired": {
        AR: "انتهت الجلسة. أرسل أي رسالة للبدء من جديد.",
        EN: "This session has expired. Send any message to start again.",
    },
    "slot_taken": {
        AR: "عذراً، هذا الوقت لم يعد متاحاً. اختر يوماً آخر:",
        EN: "Sorry, that slot is no longer available. Please choose again:",
    },

    # Existing appointments
    "loading_appointments": {AR: "⏳ جاري تحميل مواعيدك...", EN: "⏳ Loading your appointments..."},
    "no_upcoming": {
        AR: "ليس لديك مواعيد قادمة. أرسل أي رسالة للعودة للقائمة.",
        EN: "You have no upcoming appointments. Send any message to return to the menu.",
    },
    "appointments_title": {AR: "📋 *مواعيدك القادمة*", EN: "📋 *Your upcoming appointments*"},
    "appointments_footer": {
        AR: "للإلغاء أرسل \"cancel\"، ولتغيير موعد أرسل \"reschedule\".",
        EN: "Send \"cancel\" to cancel one or \"reschedule\" to move one.",
    },
    "no_cancellable": {
        AR: "لا توجد مواعيد قادمة لإلغائها.",
        EN: "You have no upcoming appointments to cancel.",
    },
    "cancel_header": {AR: "❌ إلغاء موعد", EN: "❌ Cancel Appointment"},
    "cancel_body": {AR: "اختر الموعد الذي تريد إلغاءه:", EN: "Which appointment do you want to cancel?"},
    "appointments_button": {AR: "المواعيد", EN: "Appointments"},
    "appointment_not_found": {AR: "لم يتم العثور على الموعد.", EN: "Appointment not found."},
    "cancelled": {
        AR: "✅ تم إلغاء موعدك مع {doctor} بتاريخ {when}.\n\nأرسل أي رسالة للعودة للقائمة.",
        EN: "✅ Your appointment with {doctor} on {when} has been cancelled.\n\nSend any message to return to the menu.",
    },
    "no_reschedulable": {
        AR: "لا توجد مواعيد قادمة لتعديلها.",
        EN: "You have no upcoming appointments to reschedule.",
    },
    "reschedule_header": {AR: "✏️ تعديل موعد", EN: "✏️ Reschedule"},
    "reschedule_body": {AR: "اختر الموعد الذي تريد تغييره:", EN: "Which appointment do you want to move?"},

    # Webhook
    "unsupported_media": {
        AR: "عذراً، أستطيع قراءة الرسائل النصية واختيارات القوائم فقط.",
        EN: "Sorry, I can only read text messages and menu selections.",
    },

    # Reminders
    "reminder_24h": {
        AR: "🔔 تذكير: لديك موعد غداً\n\n👨‍⚕️ الطبيب: {doctor}\n📅 {when}\n\nللإلغاء أو التعديل أرسل أي رسالة واختر من القائمة.",
        EN: "🔔 Reminder: you have an appointment tomorrow\n\n👨‍⚕️ Doctor: {doctor}\n📅 {when}\n\nTo cancel or reschedule, message us and pick from the menu.",
    },
    "reminder_2h": {
        AR: "🔔 تذكير: موعدك بعد ساعتين\n\n👨‍⚕️ الطبيب: {doctor}\n📅 {when}",
        EN: "🔔 Reminder: your appointment is in 2 hours\n\n👨‍⚕️ Doctor: {doctor}\n📅 {when}",
    },

    # Trial
    "trial_ending": {
        AR: "⏰ تنبيه: تنتهي الفترة التجريبية لـ {clinic} خلال يومين. اشترك الآن لضمان استمرار استقبال الحجوزات عبر واتساب.",
        EN: "⏰ Heads up: the free trial for {clinic} ends in 2 days. Subscribe now to keep taking WhatsApp bookings.",
    },
}


def _lang(locale: str) -> str:
    return EN if str(locale).upper() == EN else AR


def text(locale: str, key: str, **values) -> str:
    """Localized template `key` filled with `values`."""
    template = TEXTS[key][_lang(locale)]
    return template.format(**values) if values else template


def _hour12(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def format_day_title(day: date, locale: str) -> str:
    """List row title: 'Monday, Jun 10' / 'الاثنين، 10 يونيو'."""
    if _lang(locale) == EN:
        return f"{EN_DAYS[day.weekday()]}, {EN_MONTHS[day.month - 1]} {day.day:02d}"
    return f"{AR_DAYS[day.weekday()]}، {day.day} {AR_MONTHS[day.month - 1]}"


def format_long_date(day: date, locale: str) -> str:
    """'Monday, Jun 10 2024' / 'الاثنين، 10 يونيو 2024'."""
    return f"{format_day_title(day, locale)} {day.year}"


def format_when(moment: datetime, locale: str) -> str:
    """Local date and time: 'Monday, Jun 10 2024 at 2:30 PM'."""
    if _lang(locale) == EN:
        return f"{format_long_date(moment.date(), locale)} at {_hour12(moment)}"
    return f"{format_long_date(moment.date(), locale)} الساعة {moment:%H:%M}"


def format_short(moment: datetime, locale: str) -> str:
    """Compact row description: 'Jun 10, 2024 - 2:30 PM' / '10/06/2024 - 14:30'."""
    if _lang(locale) == EN:
        return f"{EN_MONTHS[moment.month - 1]} {moment.day:02d}, {moment.year} - {_hour12(moment)}"
    return f"{moment:%d/%m/%Y - %H:%M}"
