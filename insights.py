#!/usr/bin/env python3
"""
AI Workout Insights
Asks a chat model to comment on a finished workout and scrapes the reply
into notes, calories burned and recommendations
"""

import logging
import math
import os
import re
from datetime import datetime
from typing import Any, Dict, Optional

import anthropic
import openai

logger = logging.getLogger(__name__)

DEEPSEEK_BASE_URL = 'https://api.deepseek.com'
DEFAULT_MODELS = {
    'deepseek': 'deepseek-chat',
    'anthropic': 'claude-3-haiku-20240307',
}

SYSTEM_PROMPT = "You are a fitness expert assistant. Analyze the following workout data and provide insights."

FALLBACK_NOTES = "Unable to analyze workout data at this time. Using estimated values instead."
FALLBACK_RECOMMENDATIONS = (
    "Continue with your fitness journey. We recommend balancing cardio and strength training for optimal results."
)
DEFAULT_NOTES = "Workout analysis complete."
DEFAULT_RECOMMENDATIONS = "Keep up the good work!"

ANALYSIS_PATTERN = re.compile(r'analysis|summary|overview', re.IGNORECASE)
CALORIES_PATTERN = re.compile(r'(\d+)(?:\s*[-–]\s*\d+)?\s*calories', re.IGNORECASE)
RECOMMENDATIONS_PATTERN = re.compile(r'recommendations|suggestions|advice|tips', re.IGNORECASE)
SECTION_KEYWORDS = [
    'analysis', 'summary', 'overview', 'calories', 'burned', 'energy',
    'recommendations', 'suggestions', 'advice', 'tips',
]


def round_half_up(value):
    return int(math.floor(value + 0.5))


# ============================================================================
# Provider configuration
# ============================================================================

def get_provider():
    """AI provider from AI_PROVIDER: 'deepseek' (default) or 'anthropic'"""
    provider = (os.getenv('AI_PROVIDER') or 'deepseek').strip().lower()
    if provider not in DEFAULT_MODELS:
        raise ValueError(f"Unsupported AI_PROVIDER: {provider}")
    return provider


def get_model(provider):
    return os.getenv('AI_MODEL') or DEFAULT_MODELS[provider]


def get_deepseek_api_key():
    """DeepSeek key, prefixed with sk- when stored without it"""
    api_key = os.getenv('DEEPSEEK_API_KEY') or os.getenv('NEXT_PUBLIC_DEEPSEEK_API_KEY') or ''
    return api_key if api_key.startswith('sk-') else f"sk-{api_key}"


def request_completion(prompt: str) -> str:
    """Send the workout summary to the configured chat model and return its reply text"""
    provider = get_provider()
    model = get_model(provider)
    logger.info("Calling %s (%s) for workout insights", provider, model)

    if provider == 'anthropic':
        client = anthropic.Anthropic(api_key=os.getenv('ANTHROPIC_API_KEY'))
        message = client.messages.create(
            model=model,
            max_tokens=1024,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        logger.info("Insight usage: %s input / %s output tokens",
                    message.usage.input_tokens, message.usage.output_tokens)
        return message.content[0].text

    client = openai.OpenAI(
        api_key=get_deepseek_api_key(),
        base_url=os.getenv('DEEPSEEK_BASE_URL') or DEEPSEEK_BASE_URL,
    )
    completion = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
    )
    if completion.usage is not None:
        logger.info("Insight usage: %s input / %s output tokens",
                    completion.usage.prompt_tokens, completion.usage.completion_tokens)
    return completion.choices[0].message.content or ''


# ============================================================================
# Prompt / parsing
# ============================================================================

def _local_time(iso_string, tz=None) -> Optional[datetime]:
    try:
        return datetime.fromisoformat(iso_string.replace('Z', '+00:00')).astimezone(tz)
    except (AttributeError, ValueError):
        return None


def format_workout_summary(workout_data: Dict[str, Any], tz=None) -> str:
    """Readable summary of the workout used as the user prompt; times shown in tz"""
    duration_minutes = round_half_up(workout_data['total_duration_seconds'] / 60)

    lines = []
    for ex in workout_data['exercises']:
        summary = f"- {ex['machine_name']} ({ex['machine_type']}): {round_half_up(ex['duration_seconds'] / 60)} minutes"
        if ex['machine_type'] == 'strength' and ex.get('weight_kg'):
            summary += f", {ex['weight_kg']}kg"
        if ex['machine_type'] == 'cardio':
            if ex.get('distance_meters'):
                summary += f", {ex['distance_meters']}m"
            if ex.get('incline_degrees'):
                summary += f", incline: {ex['incline_degrees']}°"
        lines.append(summary)

    start = _local_time(workout_data['start_time'], tz)
    end = _local_time(workout_data['end_time'], tz)
    start_str = start.strftime('%I:%M:%S %p').lstrip('0') if start else workout_data['start_time']
    end_str = end.strftime('%I:%M:%S %p').lstrip('0') if end else workout_data['end_time']
    date_str = f"{start.month}/{start.day}/{start.year}" if start else ''

    exercise_summaries = '\n'.join(lines)
    return f"""
Workout Summary:
- Total Duration: {duration_minutes} minutes
- Start Time: {start_str}
- End Time: {end_str}
- Date: {date_str}

Exercises:
{exercise_summaries}

Please provide:
1. A brief analysis of this workout
2. Estimated calories burned
3. Recommendations for future workouts
"""


def find_next_section_index(text, start_index):
    """Position of the next section keyword at least 10 characters past start_index"""
    min_index = len(text)
    for keyword in SECTION_KEYWORDS:
        keyword_index = text.find(keyword, start_index + 10)
        if start_index < keyword_index < min_index:
            min_index = keyword_index
    return min_index


def parse_insights(response_text: str, workout_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Pull notes, calories and recommendations out of free-form model output.

    Notes run from the first analysis/summary/overview keyword to the next
    section keyword. Calories take the first "N calories" (or the lower end
    of "N-M calories"). Recommendations run from the first
    recommendations/suggestions/advice/tips keyword to the end.
    """
    ai_notes = DEFAULT_NOTES
    ai_calculated_calories = estimate_calories(workout_data)
    ai_overall_recommendations = DEFAULT_RECOMMENDATIONS

    analysis_match = ANALYSIS_PATTERN.search(response_text)
    if analysis_match:
        analysis_index = analysis_match.start()
        next_section_index = find_next_section_index(response_text, analysis_index)
        if next_section_index > analysis_index:
            ai_notes = response_text[analysis_index:next_section_index].strip()

    calories_match = CALORIES_PATTERN.search(response_text)
    if calories_match:
        ai_calculated_calories = int(calories_match.group(1))

    recommendations_match = RECOMMENDATIONS_PATTERN.search(response_text)
    if recommendations_match:
        ai_overall_recommendations = response_text[recommendations_match.start():].strip()

    return {
        'ai_notes': ai_notes,
        'ai_calculated_calories': ai_calculated_calories,
        'ai_overall_recommendations': ai_overall_recommendations,
        'fallback': False,
    }


def estimate_calories(workout_data: Dict[str, Any]) -> int:
    """Fixed per-minute calorie estimate used when the model gives no number"""
    base_calories = 0.0
    for ex in workout_data['exercises']:
        duration_minutes = ex['duration_seconds'] / 60

        if ex['machine_type'] == 'cardio':
            if ex['machine_name'] == 'Treadmill':
                incline = ex.get('incline_degrees')
                incline_factor = 1 + (incline / 15) if incline else 1
                base_calories += 8 * duration_minutes * incline_factor
            elif ex['machine_name'] == 'Rowing Machine':
                base_calories += 10 * duration_minutes
            else:
                base_calories += 7 * duration_minutes
        elif ex['machine_type'] == 'strength':
            weight = ex.get('weight_kg')
            weight_factor = weight / 50 if weight else 1
            base_calories += 5 * duration_minutes * weight_factor

    return round_half_up(base_calories)


def fallback_insights(workout_data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'ai_notes': FALLBACK_NOTES,
        'ai_calculated_calories': estimate_calories(workout_data),
        'ai_overall_recommendations': FALLBACK_RECOMMENDATIONS,
        'fallback': True,
    }


def get_workout_insights(workout_data: Dict[str, Any], tz=None) -> Dict[str, Any]:
    """Insights for a workout; never raises, falls back to the calorie estimate"""
    try:
        response_text = request_completion(format_workout_summary(workout_data, tz))
    except (anthropic.AuthenticationError, openai.AuthenticationError) as e:
        logger.error("Authentication error. Please check your AI provider API key: %s", e)
        return fallback_insights(workout_data)
    except Exception as e:
        logger.error("Error fetching workout insights: %s", e)
        return fallback_insights(workout_data)

    return parse_insights(response_text, workout_data)
