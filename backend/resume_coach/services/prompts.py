"""Prompt templates, keyed by flow name.

Templates are ``str.format`` strings; the placeholders are the keys returned
by the payload's ``prompt_context()``.
"""

JSON_INSTRUCTIONS = """You are a JSON API. Reply with one JSON object and nothing else.
The object must validate against this JSON Schema:
{schema}"""

SUMMARIZE_TEXT = """You are an expert summarizer. Please summarize the following text to the specified length.
short = 2-3 sentences, medium = one paragraph, long = several detailed paragraphs.

Text:
{text}

Length: {length}

Return the result as "summary"."""

SUMMARIZE_WEBPAGE = """You are an expert summarizer who can summarize the content of a webpage.

URL: {url}

Page content:
{page_text}

Summarize the full content of this webpage as "summary" and include the URL above as "sourceUrl"."""

SUMMARIZE_WITH_LENGTH = """You are an AI expert in content summarization. Please provide a summary of the following content, tailored to the specified length.
short = 2-3 sentences, medium = one paragraph, long = several detailed paragraphs.

Content:
{content}

Length: {length}

Return the result as "summary"."""

ANALYZE_RESUME = """You are an expert HR professional and resume reviewer.
Given the following job description and resume:

Job Description:
{job_description}

Resume:
{resume}

Please perform the following tasks:
1. Calculate a match score representing how well the resume aligns with the job description, as a percentage (e.g. "85% Match") or a qualitative assessment (e.g. "Strong Match", "Moderate Match", "Weak Match"). Return it as "matchScore".
2. Provide actionable suggestions to improve the resume for this specific job description, as a bulleted list of 4-5 concise points. Return them as "suggestions".
3. Keyword analysis, returned as "keywords":
   - "jobDescriptionKeywords": important keywords and skills from the job description.
   - "presentInResume": those keywords that appear in the resume.
   - "missingFromResume": important keywords that appear to be missing from the resume."""

GENERATE_DEMO_RESUME = """You are an expert resume writer and career coach.
Given the following job description and desired experience level, generate a comprehensive and professional demo resume.

Job Description:
{job_description}

Experience Level: {experience_level}

The resume should include:
- Contact Information (realistic placeholder data such as "John Doe", "john.doe@email.com", "(555) 123-4567", "City, State")
- Summary/Objective tailored to the job and level
- Experience: for "fresher" focus on projects, internships and skills; for "intermediate" show 1-3 relevant roles over 3-7 years; for "senior" show leadership and impact over 7+ years
- Education with placeholder institutions and years suited to the level
- Skills relevant to the job description and level

Use strong action verbs. Return the complete resume text as "demoResume"."""

MODIFY_RESUME = """You are an expert resume editor and career coach.
Given the following:

Job Description:
{job_description}

Original Resume:
{original_resume}

Suggestions for Improvement (from a previous analysis of the original resume against the job description):
{prior_suggestions}

A. Revise the original resume. Incorporate the suggestions and tailor it to the job description: integrate missing keywords, rephrase experience to highlight relevant achievements, keep professional language. Return the full plain-text revised resume as "modifiedResumeText".

B. Analyze the NEWLY MODIFIED resume against the ORIGINAL job description and return it as "newAnalysis" with:
   - "matchScore" (e.g. "90% Match", "Excellent Match")
   - "suggestions": concise further improvements (about 4-5 bullet points), if any
   - "keywords": "jobDescriptionKeywords", "presentInResume" and "missingFromResume", computed against the MODIFIED resume.

If the original resume cannot be understood, "modifiedResumeText" should explain this and "newAnalysis" should reflect that no valid modification could be made."""

FIND_JOBS_BY_RESUME = """You are a sophisticated AI career assistant. Analyze the resume below and generate 3 to 5 suitable job opportunities.
They should read as if they come from well-known multinational corporations or reputable product-based technology companies.

Resume:
{resume}

For each job return:
- "companyName": a realistic, recognizable company name
- "jobTitle": a title aligned with the skills and experience in the resume
- "jobDescription": 3-5 sentences that resonate with the strengths in the resume
- "matchPercentage": e.g. "90% Match", "Excellent Fit"
- "applyLink": a plausible placeholder URL such as "https://examplecompany.com/careers/job-title-123", or "#"

Return them as "jobs". If the resume is generic, suggest roles generally in demand in the tech sector."""

PROMPTS = {
    "summarize_text": SUMMARIZE_TEXT,
    "summarize_webpage": SUMMARIZE_WEBPAGE,
    "summarize_with_length": SUMMARIZE_WITH_LENGTH,
    "analyze_resume": ANALYZE_RESUME,
    "generate_demo_resume": GENERATE_DEMO_RESUME,
    "modify_resume": MODIFY_RESUME,
    "find_jobs_by_resume": FIND_JOBS_BY_RESUME,
}
