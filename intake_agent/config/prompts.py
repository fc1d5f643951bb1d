"""Conversation prompts and tool definitions for the speech model."""

SYSTEM_PROMPT = """You are the virtual receptionist for {firm_name}, a Social Security Disability law firm.
You answer every inbound call, work out why the person is calling, and either
conduct a new-claim intake interview or take a message for a callback.

Guidelines:
- Be warm, patient and professional; callers are often in difficult situations
- Keep questions short and conversational, one topic at a time
- Never give legal advice and never promise approval or an outcome
- You are an AI assistant gathering information; say so if asked
- If the caller mentions crisis or suicide, give the 988 lifeline right away,
  ask whether they are safe and call flag_urgent with crisis_mentioned=true
- If the caller asks for a person, respect that and call request_human_transfer
- Fees: contingency only, no fee unless they win, 25% of back benefits

Greeting (always first):
"Thank you for calling {firm_name}. This is the virtual assistant. This call may
be recorded for quality purposes. How can I help you today?"

Routing:
- INTAKE only when the caller clearly wants help with THEIR OWN new SSD, SSDI or
  SSI claim and has about ten minutes to talk.
- CALLBACK for everything else: leaving a message, reaching a specific person,
  calling for someone else, existing clients, billing, documents, case status,
  vendors, or an unclear purpose. When in doubt, use CALLBACK.

Callback flow:
1. Ask for their name, the best callback number and what the call is about.
2. Pick a category: EXISTING_CLIENT, CASE_STATUS, BILLING, DOCUMENTS, REFERRAL,
   VENDOR or GENERAL.
3. Ask whether it is urgent or can wait a day or two.
4. Call record_callback_request before anything else and wait for the result.
5. Tell them when to expect the callback, then call end_call with outcome
   "callback_requested".

Intake flow (record each section with its function as soon as you have it):
1. Demographics: full name, date of birth, best phone, optional email, city and state.
2. Education: highest level completed.
3. Medical conditions: conditions, severity, how long, treatments, hospitalizations
   in the past year.
4. Medications and side effects.
5. Functional limitations: sitting, standing, walking, lifting, concentration,
   memory, being around people, missed days per month, lying down, assistive devices.
6. Work history for the last 15 years: jobs, heaviest lifting, total years, last worked.
7. Application status: applied or not, stage, denial or hearing dates.
8. SMS consent (required): ask whether you may text a reference number and contact
   details to their phone. Record the answer with record_sms_consent. Texts are sent
   only on an explicit yes; mention they can reply STOP at any time.
9. Call record_assessment, then close based on the guidance it returns, and finish
   with end_call.

Function results may include a "guidance" field. Follow it in your next turn
without reading it aloud.

Cases tend to be stronger with age 50+ (especially 55+), limited education,
physical work history, multiple conditions, mental and physical conditions together,
strong medications, limits that prevent an eight-hour workday, and recent
hospitalizations. Be encouraging when these are present without making promises.
"""


def build_system_prompt(firm_name: str) -> str:
    """Render the system prompt for a firm."""
    return SYSTEM_PROMPT.format(firm_name=firm_name)


def _tool(name: str, description: str, properties: dict, required: list) -> dict:
    return {
        "type": "function",
        "name": name,
        "description": description,
        "parameters": {
            "type": "object",
            "properties": properties,
            "required": required,
        },
    }


def _string(description: str, enum: list = None) -> dict:
    schema = {"type": "string", "description": description}
    if enum:
        schema["enum"] = enum
    return schema


def _number(description: str) -> dict:
    return {"type": "number", "description": description}


def _boolean(description: str) -> dict:
    return {"type": "boolean", "description": description}


def _string_list(description: str) -> dict:
    return {"type": "array", "items": {"type": "string"}, "description": description}


INTAKE_TOOLS = [
    _tool(
        "record_demographics",
        "Record the caller's basic demographic information",
        {
            "first_name": _string("Caller's first name"),
            "last_name": _string("Caller's last name"),
            "date_of_birth": _string("Date of birth in YYYY-MM-DD format"),
            "phone": _string("Best phone number to reach them"),
            "email": _string("Email address (optional)"),
            "city": _string("City they live in"),
            "state": _string("State they live in"),
        },
        ["first_name", "last_name", "date_of_birth", "phone"],
    ),
    _tool(
        "record_education",
        "Record the caller's education level",
        {
            "education_level": _string(
                "Highest level: illiterate (cannot read/write), marginal (6th grade or less), "
                "limited (7th-11th), high_school (GED or diploma), college (any college)",
                ["illiterate", "marginal", "limited", "high_school", "college"],
            ),
            "details": _string("Additional detail, e.g. 'completed 9th grade'"),
        },
        ["education_level"],
    ),
    _tool(
        "record_medical_conditions",
        "Record the caller's medical conditions",
        {
            "conditions": _string_list("Medical conditions preventing work"),
            "severity": _string(
                "Overall severity of conditions",
                ["mild", "moderate", "severe", "disabling"],
            ),
            "duration_months": _number("How many months they have had these conditions"),
            "treatments": _string_list("Treatments (surgeries, injections, therapy, etc.)"),
            "hospitalizations": _number("Number of hospitalizations in past 12 months"),
        },
        ["conditions", "severity"],
    ),
    _tool(
        "record_medications",
        "Record the caller's current medications",
        {
            "medications": _string_list("Medications currently taking"),
            "side_effects": _string_list("Side effects (drowsiness, dizziness, etc.)"),
        },
        ["medications"],
    ),
    _tool(
        "record_functional_limitations",
        "Record the caller's functional limitations",
        {
            "sitting_minutes": _number("Minutes they can sit before needing to get up"),
            "standing_minutes": _number("Minutes they can stand in one place"),
            "walking_blocks": _number("Blocks they can walk without stopping"),
            "lifting_pounds": _number("Maximum weight they can lift and carry in pounds"),
            "concentration_issues": _boolean("Concentration or focus problems"),
            "memory_issues": _boolean("Memory problems"),
            "social_difficulties": _boolean("Difficulty being around others"),
            "expected_absences": _number("Days per month they would expect to miss work"),
            "needs_to_lie_down": _boolean("Needs to lie down during the day"),
            "assistive_devices": _string_list("Cane, walker, wheelchair, brace, etc."),
        },
        ["sitting_minutes", "standing_minutes", "lifting_pounds"],
    ),
    _tool(
        "record_work_history",
        "Record the caller's work history",
        {
            "jobs": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "title": {"type": "string"},
                        "years": {"type": "number"},
                    },
                },
                "description": "Jobs with title and years worked",
            },
            "heaviest_lifting": _string(
                "Heaviest physical demand: sedentary (desk work), light (10-20 lbs), "
                "medium (25-50 lbs), heavy (50-100 lbs), very_heavy (100+ lbs)",
                ["sedentary", "light", "medium", "heavy", "very_heavy"],
            ),
            "total_work_years": _number("Total years worked"),
            "last_work_date": _string("When they last worked (date or description)"),
            "currently_working": _boolean("Whether they are currently working"),
        },
        ["jobs", "heaviest_lifting", "total_work_years"],
    ),
    _tool(
        "record_application_status",
        "Record the caller's Social Security application status",
        {
            "has_applied": _boolean("Whether they have applied for Social Security Disability"),
            "status": _string(
                "Current application status",
                ["never_applied", "waiting", "denied_initial", "denied_reconsideration",
                 "hearing_pending", "hearing_scheduled"],
            ),
            "denial_date": _string("Date of most recent denial (if applicable)"),
            "hearing_date": _string("Scheduled hearing date (if applicable)"),
        },
        ["has_applied", "status"],
    ),
    _tool(
        "record_sms_consent",
        "Record whether the caller consented to receive SMS messages. MUST be called before ending the call.",
        {
            "consent_given": _boolean("Whether the caller agreed to receive SMS messages"),
            "phone_number": _string("Phone number they consented to receive SMS at"),
        },
        ["consent_given"],
    ),
    _tool(
        "record_assessment",
        "Calculate and record the case assessment. Call after gathering all information.",
        {"notes": _string("Any additional notes about the caller or case")},
        [],
    ),
    _tool(
        "flag_urgent",
        "Flag the case as urgent (crisis mentioned, deadline approaching, or hearing scheduled)",
        {
            "reason": _string("Reason for urgent flag"),
            "crisis_mentioned": _boolean("Whether caller mentioned crisis or suicidal ideation"),
        },
        ["reason"],
    ),
    _tool(
        "request_human_transfer",
        "Caller requested to speak with a human",
        {"reason": _string("Reason for transfer request")},
        [],
    ),
    _tool(
        "end_call",
        "Mark the call as complete",
        {
            "outcome": _string(
                "How the call ended",
                ["completed", "transferred", "callback_requested", "disconnected", "not_interested"],
            ),
            "send_sms": _boolean("Whether to send SMS confirmation"),
        },
        ["outcome"],
    ),
    _tool(
        "record_callback_request",
        "Record a callback request for callers who are not opening a new disability claim "
        "(existing client, billing, case status, documents, referral, etc.)",
        {
            "caller_name": _string("Name of the person calling"),
            "phone_number": _string("Best phone number to call them back"),
            "purpose": _string("Brief description of why they are calling"),
            "category": _string(
                "Category of the callback request",
                ["EXISTING_CLIENT", "CASE_STATUS", "BILLING", "DOCUMENTS", "REFERRAL",
                 "VENDOR", "GENERAL", "OTHER"],
            ),
            "is_urgent": _boolean("Whether the caller indicated this is urgent"),
            "notes": _string("Any additional notes about the request"),
        },
        ["caller_name", "phone_number", "purpose", "category"],
    ),
]
