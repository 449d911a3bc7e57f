"""
Command line preview: roster YAML in, first-stage pools and round-robin
schedule out.

    python src/generate_matches.py data/teams.yaml --courts SRC-1,SRC-2,SRC-3
"""
import argparse
import sys
from typing import Dict, List, Optional

import yaml

from tournament.allocation import AllocationManager
from tournament.errors import TournamentError, ValidationError
from tournament.formats import get_format, stages_of_type, suggest_formats
from tournament.models import Court, Team
from tournament.pools import autofill_pools, instantiate_pools
from tournament.settings import get_default_settings, load_settings, normalize_settings


def load_roster(file_path: str) -> List[Team]:
    """
    Read teams from YAML. Accepts a list of names, a list of team mappings,
    or a mapping with a ``teams`` list.
    """
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file)
    if isinstance(data, dict):
        data = data.get('teams')
    if not isinstance(data, list) or not data:
        raise ValidationError(f'{file_path} does not contain a list of teams')

    teams = []
    for index, item in enumerate(data, start=1):
        if isinstance(item, str):
            item = {'team_id': f't{index}', 'name': item}
        team = Team.from_dict(item)
        if team.order_index is None:
            team.order_index = index
        teams.append(team)
    return teams


def build_preview(teams: List[Team], court_codes: List[str], format_id: Optional[str] = None,
                  settings: Optional[Dict] = None) -> Dict:
    """
    Pools and scheduled matches of the first pool-play stage.

    Returns {'format': format_def, 'pools': [Pool], 'matches': [Match], 'schedule': {court: [...]}}
    """
    settings = normalize_settings(settings or get_default_settings())
    courts = [Court(code) for code in court_codes] or [Court.from_dict(c) for c in settings['courts']]
    if not courts:
        raise ValidationError('At least one court is required (use --courts)')

    if format_id is None:
        suggestions = suggest_formats(len(teams), len(courts))
        if not suggestions:
            raise ValidationError(f'No format supports {len(teams)} teams on {len(courts)} courts')
        format_def = suggestions[0]
    else:
        format_def = get_format(format_id)

    stage = stages_of_type(format_def, 'pool_play')[0]
    allocator = AllocationManager(courts, settings)
    pools = instantiate_pools(stage, allocator.active_courts)
    pools = autofill_pools(pools, teams)
    matches = allocator.allocate_pool_stage(stage['key'], pools)
    names = {team.team_id: team.display_name for team in teams}
    return {
        'format': format_def,
        'pools': pools,
        'matches': matches,
        'schedule': allocator.get_schedule_output(matches, names),
    }


def print_preview(preview: Dict, teams: List[Team]) -> None:
    names = {team.team_id: team.display_name for team in teams}
    print(f"Format: {preview['format']['name']} ({preview['format']['id']})")
    print()
    for pool in preview['pools']:
        members = ', '.join(names.get(team_id, team_id) for team_id in pool.team_ids)
        print(f"Pool {pool.name} (court {pool.home_court}): {members}")
    print()
    for court, slots in preview['schedule'].items():
        print(f"Court {court}")
        for slot in slots:
            ref = ', '.join(slot['ref']) or '-'
            print(f"  {slot['start_time']}-{slot['end_time']}  {slot['teams'][0]} vs {slot['teams'][1]}  (ref: {ref})")
    print()
    print(f"Total matches: {len(preview['matches'])}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Preview pools and the first-stage schedule for a roster.')
    parser.add_argument('roster', help='YAML file with the team roster')
    parser.add_argument('--format', dest='format_id', help='Format id (default: first suggested format)')
    parser.add_argument('--courts', default='', help='Comma separated court codes, e.g. SRC-1,SRC-2')
    parser.add_argument('--settings', help='YAML settings file (day start, match duration, lunch)')
    args = parser.parse_args(argv)

    court_codes = [code.strip() for code in args.courts.split(',') if code.strip()]
    try:
        teams = load_roster(args.roster)
        settings = load_settings(args.settings) if args.settings else None
        preview = build_preview(teams, court_codes, args.format_id, settings)
    except (TournamentError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print_preview(preview, teams)
    return 0


if __name__ == '__main__':
    sys.exit(main())
