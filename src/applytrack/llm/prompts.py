from __future__ import annotations

JOB_DESCRIPTION_PROMPT = """
You are an expert assistant that reads raw job posting text.
Return strict JSON with keys:
- description: string (the job description, cleaned of navigation and boilerplate)
- company_name: string ("" if unknown)
- job_title: string ("" if unknown)
- location: string ("" if unknown)
- type: one of [{types}] or ""
- category: one of [{categories}] or ""
- work_arrangement: one of [{work_arrangements}] or ""
- is_us_citizen_only: boolean (true when the posting requires US citizenship
  or a security clearance, for example "must be a US citizen")

Job URL: {job_url}
Job text:
{job_text}
""".strip()

RESUME_TEXT_PROMPT = """
You are an expert text extraction tool. Extract all text content from the attached PDF.
Do not summarize, analyze, or alter the text in any way.
Preserve the original line breaks and spacing as much as possible.
Return only the extracted text.
""".strip()

SCORE_RESUME_PROMPT = """
You are an expert career coach and hiring manager. Score how well the resume matches the job description.
- Evaluate the alignment of skills, experience, and qualifications.
- Pay close attention to keywords and required technologies.
- The resume may be plain text or LaTeX source; judge the content, not the markup.
Return strict JSON with keys:
- score: integer from 0 to 100
- summary: one sentence explaining the score; wrap the key matching or missing terms in **double asterisks**

Resume:
{resume_content}

Job Description:
{job_description}
""".strip()

KEYWORDS_PROMPT = """
Act as an employment tracking system analyzing a job description for keywords.
Identify every relevant keyword an applicant might search for: job-specific terms, skills,
qualifications, software or tools, and industry-specific language.
Also suggest how the posting could be made more visible and attractive to qualified candidates.
Return strict JSON with keys:
- keywords: string[]
- suggestions: string

Job Description:
{job_description}
""".strip()
